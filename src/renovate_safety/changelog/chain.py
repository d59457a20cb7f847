"""Ordered, short-circuiting changelog acquisition."""

from collections.abc import Sequence
from dataclasses import dataclass, field

import httpx

from renovate_safety.changelog.cache import ChangelogCache
from renovate_safety.changelog.strategies import (
    DEFAULT_STRATEGIES,
    RELEASE_SEPARATOR,
    SOURCE_CONFIDENCE,
    AcquisitionContext,
    ChangelogStrategy,
    RegistryDescriptionStrategy,
    StrategyOutcome,
)
from renovate_safety.core.models import ChangelogDiff, ChangelogSource, EvidenceStatus
from renovate_safety.errors import RenovateSafetyError
from renovate_safety.extraction.lexicon import has_breaking_markers
from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AcquisitionResult:
    """Outcome of the whole chain for one update."""

    status: EvidenceStatus
    changelog: ChangelogDiff | None = None
    attempts: list[StrategyOutcome] = field(default_factory=list)
    from_cache: bool = False

    @property
    def confidence(self) -> float:
        """Trust in the winning evidence, 0.0 when nothing was found."""
        if self.changelog is None:
            return 0.0
        return SOURCE_CONFIDENCE[self.changelog.source]

    @property
    def errors(self) -> list[str]:
        """Failure reasons of strategies that errored."""
        return [a.reason or a.strategy for a in self.attempts if a.failed]

    @property
    def reasons(self) -> list[str]:
        """Why each strategy came back without evidence."""
        return [f"{a.strategy}: {a.reason}" for a in self.attempts if not a.found and a.reason]


class ChangelogChain:
    """Runs changelog strategies from the most to the least trusted.

    Strategies are kept in their declared order (commit mining, registry
    diff, release notes, registry description) but evaluated by descending
    confidence, stopping at the first one that produces evidence. When
    release notes win and mention breaking changes, the registry description
    is fetched as well and merged into a ``combined`` result.
    """

    def __init__(
        self,
        strategies: Sequence[ChangelogStrategy] | None = None,
        cache: ChangelogCache | None = None,
    ) -> None:
        """Initialize the chain.

        Args:
            strategies: Strategies in declared order; defaults to all four.
            cache: Optional changelog cache consulted before any strategy.
        """
        self.strategies = list(strategies) if strategies is not None else [s() for s in DEFAULT_STRATEGIES]
        self.cache = cache

    def evaluation_order(self) -> list[ChangelogStrategy]:
        """Strategies sorted by descending confidence; ties keep declared order."""
        return sorted(self.strategies, key=lambda s: -s.confidence)

    async def _run(self, strategy: ChangelogStrategy, context: AcquisitionContext) -> StrategyOutcome:
        try:
            return await strategy.acquire(context)
        except (RenovateSafetyError, httpx.HTTPError) as e:
            logger.warning("Changelog strategy %s failed for %s: %s", strategy.name, context.update, e)
            return StrategyOutcome.failure(strategy.name, str(e))

    async def _combine(self, notes: ChangelogDiff, context: AcquisitionContext) -> ChangelogDiff | None:
        outcome = await self._run(RegistryDescriptionStrategy(), context)
        if not outcome.found or outcome.changelog is None:
            return None
        return ChangelogDiff(
            content=f"{notes.content}{RELEASE_SEPARATOR}{outcome.changelog.content}",
            source=ChangelogSource.COMBINED,
            from_version=notes.from_version,
            to_version=notes.to_version,
        )

    async def acquire(self, context: AcquisitionContext) -> AcquisitionResult:
        """Acquire changelog evidence for one update.

        Args:
            context: Update, providers and repository coordinates.

        Returns:
            The winning evidence, or a ``not_found``/``failed`` status with
            the reason each strategy gave.
        """
        update = context.update
        if self.cache is not None:
            cached = self.cache.get(update)
            if cached is not None:
                logger.debug("Changelog cache hit for %s", update)
                return AcquisitionResult(status=EvidenceStatus.FOUND, changelog=cached, from_cache=True)

        attempts: list[StrategyOutcome] = []
        for strategy in self.evaluation_order():
            outcome = await self._run(strategy, context)
            attempts.append(outcome)
            if not outcome.found or outcome.changelog is None:
                logger.debug("%s found nothing for %s: %s", strategy.name, update, outcome.reason)
                continue

            changelog = outcome.changelog
            if changelog.source == ChangelogSource.RELEASE_NOTES and has_breaking_markers(changelog.content):
                changelog = await self._combine(changelog, context) or changelog

            logger.debug("Changelog for %s acquired from %s", update, changelog.source.value)
            if self.cache is not None:
                self.cache.set(update, changelog)
            return AcquisitionResult(status=EvidenceStatus.FOUND, changelog=changelog, attempts=attempts)

        status = EvidenceStatus.FAILED if any(a.failed for a in attempts) else EvidenceStatus.NOT_FOUND
        return AcquisitionResult(status=status, attempts=attempts)
