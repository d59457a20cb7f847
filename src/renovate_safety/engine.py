"""Risk-analysis engine.

Ties the analyzer registry, the changelog chain, the extractor and the risk
aggregator together. Independent evidence branches run concurrently under a
bounded semaphore and degrade independently on failure.
"""

import asyncio
from collections.abc import Awaitable, Sequence
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar

import httpx

from renovate_safety.analyzers.base import AnalyzerRegistry, EcosystemAnalyzer
from renovate_safety.changelog.chain import AcquisitionResult
from renovate_safety.config import RenovateSafetyConfig
from renovate_safety.core.models import (
    BreakingChange,
    Ecosystem,
    EvidenceStatus,
    PackageAnalysis,
    PackageMetadata,
    PackageUpdate,
    UsageAnalysis,
)
from renovate_safety.errors import RenovateSafetyError, ValidationError
from renovate_safety.extraction import estimate_tokens, extract_breaking_changes, merge_breaking_changes
from renovate_safety.registry.base import FetchResult
from renovate_safety.registry.github import GitHubReleasesClient
from renovate_safety.registry.npm import NpmRegistryClient
from renovate_safety.registry.pypi import PyPIClient
from renovate_safety.risk import Evidence, assess_risk
from renovate_safety.utils.logging import get_logger
from renovate_safety.validation import validate_npm_package_name, validate_package_update

logger = get_logger(__name__)

T = TypeVar("T")

LLM_SOURCE = "llm"
LLM_MAX_CONFIDENCE = 0.5

# Errors a branch may raise without aborting the run
BRANCH_ERRORS = (RenovateSafetyError, httpx.HTTPError, OSError, ValueError)


@dataclass
class BranchResult(Generic[T]):
    """Outcome of one concurrent evidence branch."""

    ok: bool
    value: T | None = None
    error: str | None = None


@dataclass
class SummaryResult:
    """What a summarizer made of the changelog evidence."""

    summary: str
    breaking_changes: list[BreakingChange] = field(default_factory=list)


class Summarizer(Protocol):
    """Optional natural-language summarizer, trusted less than any changelog source."""

    async def summarize(self, evidence: str) -> SummaryResult: ...


class RiskEngine:
    """Analyzes package updates against a project.

    Per update, four branches run concurrently: target metadata, the usage
    scan, the changelog chain and the ecosystem context. A failing branch
    contributes nothing instead of failing the analysis.
    """

    def __init__(
        self,
        registry: AnalyzerRegistry,
        config: RenovateSafetyConfig | None = None,
        summarizer: Summarizer | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            registry: Analyzers to choose from.
            config: Engine settings; defaults apply when omitted.
            summarizer: Optional low-trust summarizer.
        """
        self.registry = registry
        self.config = config or RenovateSafetyConfig()
        self.summarizer = summarizer
        self._semaphore = asyncio.Semaphore(self.config.analysis.concurrency)

    @property
    def cache_dir(self) -> Path | None:
        analysis = self.config.analysis
        return analysis.cache_dir if analysis.use_cache else None

    async def _branch(self, name: str, operation: Awaitable[T]) -> BranchResult[T]:
        async with self._semaphore:
            try:
                return BranchResult(ok=True, value=await operation)
            except BRANCH_ERRORS as e:
                logger.warning("%s branch failed: %s", name, e)
                return BranchResult(ok=False, error=f"{name}: {e}")

    def select_analyzer(
        self,
        update: PackageUpdate,
        project_path: Path,
        ecosystem_hint: Ecosystem | None = None,
    ) -> tuple[EcosystemAnalyzer | None, bool]:
        """Pick the analyzer for an update.

        Returns:
            The analyzer and whether the project should be scanned for
            usage. With no match the npm analyzer (PyPI for names npm
            rejects) is returned for changelog work only.
        """
        selected = self.registry.select(update.name, project_path)
        if ecosystem_hint is None or (selected is not None and selected.ecosystem == ecosystem_hint):
            if selected is not None:
                return selected, True
            logger.info("No analyzer handles %s in %s; skipping the usage scan", update.name, project_path)
            try:
                validate_npm_package_name(update.name)
                fallback = Ecosystem.NPM
            except ValidationError:
                fallback = Ecosystem.PYPI
            return self.registry.for_ecosystem(fallback), False

        hinted = self.registry.for_ecosystem(ecosystem_hint)
        if hinted is None:
            return None, False
        return hinted, hinted.has_manifest(project_path)

    async def _metadata(self, analyzer: EcosystemAnalyzer, update: PackageUpdate) -> tuple[PackageMetadata | None, PackageMetadata | None]:
        before: FetchResult[PackageMetadata] = await analyzer.registry.fetch_metadata(update.name, update.from_version)
        after = await analyzer.fetch_metadata(update)
        if not after.ok:
            logger.debug("No metadata for %s: %s", update, after.error)
        return before.value if before.ok else None, after.value if after.ok else None

    async def _summarize(self, content: str) -> list[BreakingChange]:
        if self.summarizer is None:
            return []
        budget = self.config.analysis.token_limit
        if estimate_tokens(content) > budget:
            content = content[: budget * 4]
        try:
            result = await self.summarizer.summarize(content)
        except BRANCH_ERRORS as e:
            logger.warning("Summarizer failed: %s", e)
            return []
        return [
            change.model_copy(
                update={"source": LLM_SOURCE, "confidence": min(change.confidence, LLM_MAX_CONFIDENCE)}
            )
            for change in result.breaking_changes
        ]

    async def analyze(
        self,
        update: PackageUpdate,
        project_path: Path,
        ecosystem_hint: Ecosystem | None = None,
    ) -> PackageAnalysis:
        """Analyze one update.

        Args:
            update: The version bump.
            project_path: Root of the project using the package.
            ecosystem_hint: Ecosystem to assume instead of detecting it.

        Returns:
            The complete analysis with its risk assessment.

        Raises:
            ValidationError: The package name or a version is unsafe.
        """
        validate_package_update(update, ecosystem_hint)
        analyzer, scan_usage = self.select_analyzer(update, project_path, ecosystem_hint)
        if analyzer is None:
            return PackageAnalysis(update=update, error=f"No analyzer available for {ecosystem_hint}")
        validate_package_update(update, analyzer.ecosystem)

        async def no_usage() -> None:
            return None

        metadata_branch, usage_branch, changelog_branch, context_branch = await asyncio.gather(
            self._branch("metadata", self._metadata(analyzer, update)),
            self._branch("usage", analyzer.analyze_usage(update.name, project_path) if scan_usage else no_usage()),
            self._branch("changelog", analyzer.fetch_changelog(update, self.cache_dir)),
            self._branch("context", analyzer.get_additional_context(update, project_path)),
        )

        before, after = metadata_branch.value if metadata_branch.ok and metadata_branch.value else (None, None)
        usage: UsageAnalysis | None = usage_branch.value if usage_branch.ok else None
        context: dict[str, Any] = context_branch.value if context_branch.ok and context_branch.value else {}

        if changelog_branch.ok and changelog_branch.value is not None:
            acquisition = changelog_branch.value
            evidence = Evidence(acquisition.status, acquisition.confidence, acquisition.errors or acquisition.reasons)
        else:
            acquisition = AcquisitionResult(status=EvidenceStatus.FAILED)
            evidence = Evidence(EvidenceStatus.FAILED, 0.0, [changelog_branch.error or "changelog branch failed"])

        entry_hints = [*(after.entry_points if after else []), *(before.entry_points if before else [])]
        breaking_changes = extract_breaking_changes(
            update,
            acquisition.changelog,
            analyzer.ecosystem,
            entry_hints=entry_hints,
            runtime_before=before.requires_runtime if before else None,
            runtime_after=after.requires_runtime if after else None,
        )
        if acquisition.changelog is not None:
            breaking_changes = merge_breaking_changes(
                breaking_changes, await self._summarize(acquisition.changelog.content)
            )

        errors = [b.error for b in (metadata_branch, usage_branch, context_branch) if not b.ok and b.error]
        risk = assess_risk(update, breaking_changes, usage, evidence, context)
        logger.info("%s: %s risk", update, risk.level.value)

        return PackageAnalysis(
            update=update,
            ecosystem=analyzer.ecosystem,
            metadata=after,
            changelog=acquisition.changelog,
            evidence_status=evidence.status,
            evidence_errors=[*evidence.errors, *errors],
            breaking_changes=breaking_changes,
            usage=usage,
            context=context,
            risk=risk,
        )

    async def analyze_many(
        self,
        updates: Sequence[PackageUpdate],
        project_path: Path,
        ecosystem_hint: Ecosystem | None = None,
    ) -> list[PackageAnalysis]:
        """Analyze several updates concurrently.

        A rejected or failed update is reported on its own ``PackageAnalysis``
        and never stops the others.

        Returns:
            One analysis per update, in input order.
        """
        limiter = asyncio.Semaphore(self.config.analysis.concurrency)

        async def run(update: PackageUpdate) -> PackageAnalysis:
            async with limiter:
                try:
                    return await self.analyze(update, project_path, ecosystem_hint)
                except ValidationError as e:
                    logger.error("Rejected %s: %s", update, e.message)
                    return PackageAnalysis(update=update, error=str(e))
                except Exception as e:
                    logger.exception("Analysis of %s failed", update)
                    return PackageAnalysis(update=update, error=f"{type(e).__name__}: {e}")

        return list(await asyncio.gather(*(run(update) for update in updates)))


async def run_analysis(
    updates: Sequence[PackageUpdate],
    project_path: Path,
    config: RenovateSafetyConfig | None = None,
    ecosystem_hint: Ecosystem | None = None,
    summarizer: Summarizer | None = None,
) -> list[PackageAnalysis]:
    """Open the registry and GitHub clients, analyze the updates and close the clients.

    Args:
        updates: Updates to analyze.
        project_path: Root of the project using the packages.
        config: Settings; loaded defaults when omitted.
        ecosystem_hint: Ecosystem to assume instead of detecting it.
        summarizer: Optional low-trust summarizer.

    Returns:
        One analysis per update, in input order.
    """
    config = config or RenovateSafetyConfig()
    timeout = config.analysis.timeout
    ttl_hours = config.analysis.cache_ttl_hours

    async with AsyncExitStack() as stack:
        npm = await stack.enter_async_context(NpmRegistryClient(timeout=timeout))
        pypi = await stack.enter_async_context(PyPIClient(timeout=timeout))
        github = await stack.enter_async_context(
            GitHubReleasesClient(token=config.github.token, timeout=timeout)
        )
        registry = AnalyzerRegistry.default(
            npm,
            pypi,
            github=github,
            scanner_config=config.scanner,
            cache_ttl_seconds=ttl_hours * 3600 if ttl_hours else None,
        )
        engine = RiskEngine(registry, config, summarizer)
        return await engine.analyze_many(updates, project_path, ecosystem_hint)
