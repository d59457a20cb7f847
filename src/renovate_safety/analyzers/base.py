"""Ecosystem analyzer interface and the analyzer registry."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path
from typing import Any, ClassVar

from renovate_safety.changelog.cache import DEFAULT_TTL_SECONDS, ChangelogCache
from renovate_safety.changelog.chain import AcquisitionResult, ChangelogChain
from renovate_safety.changelog.strategies import AcquisitionContext
from renovate_safety.config import ScannerConfig
from renovate_safety.core.models import DependencyType, Ecosystem, PackageMetadata, PackageUpdate, UsageAnalysis
from renovate_safety.registry.base import FetchResult, RegistryProvider
from renovate_safety.registry.github import GitHubReleasesClient, parse_github_repository
from renovate_safety.scanning.files import ProjectFiles
from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)


class EcosystemAnalyzer(ABC):
    """Base class for per-ecosystem analyzers.

    An analyzer combines a registry client, the changelog chain and the
    usage scanners of one ecosystem. Subclasses declare their manifest files
    and implement usage scanning and additional context.
    """

    ecosystem: ClassVar[Ecosystem]
    manifest_files: ClassVar[tuple[str, ...]] = ()
    """Files whose presence at the project root marks a project of this ecosystem."""

    config_file_patterns: ClassVar[tuple[str, ...]] = ()
    """Glob patterns of config files searched for literal package mentions."""

    def __init__(
        self,
        registry: RegistryProvider,
        github: GitHubReleasesClient | None = None,
        scanner_config: ScannerConfig | None = None,
        chain: ChangelogChain | None = None,
        cache_ttl_seconds: int | None = DEFAULT_TTL_SECONDS,
    ) -> None:
        """Initialize the analyzer.

        Args:
            registry: Registry client of this ecosystem.
            github: Optional GitHub client for release notes and commits.
            scanner_config: Usage scanner settings.
            chain: Changelog chain; defaults to every strategy.
            cache_ttl_seconds: TTL for cached changelogs.
        """
        self.registry = registry
        self.github = github
        self.scanner_config = scanner_config or ScannerConfig()
        self.chain = chain or ChangelogChain()
        self.cache_ttl_seconds = cache_ttl_seconds

    def has_manifest(self, project_path: Path) -> bool:
        """Check whether the project has one of this ecosystem's manifests."""
        return any((project_path / name).is_file() for name in self.manifest_files)

    def can_handle(self, package_name: str, project_path: Path) -> bool:
        """Check whether this analyzer applies to the package and project."""
        return self.has_manifest(project_path)

    async def fetch_metadata(self, update: PackageUpdate) -> FetchResult[PackageMetadata]:
        """Fetch registry metadata of the target version."""
        return await self.registry.fetch_metadata(update.name, update.to_version)

    async def resolve_repository(self, update: PackageUpdate) -> tuple[str, str] | None:
        """GitHub coordinates of the package source, if the registry names them."""
        metadata = await self.fetch_metadata(update)
        if not metadata.ok or metadata.value is None:
            return None
        return parse_github_repository(metadata.value.repository) or parse_github_repository(
            metadata.value.homepage
        )

    async def fetch_changelog(self, update: PackageUpdate, cache_dir: Path | None = None) -> AcquisitionResult:
        """Acquire changelog evidence for an update.

        Args:
            update: The version bump.
            cache_dir: Changelog cache directory; None disables caching.

        Returns:
            The winning changelog or the reasons nothing was found.
        """
        repository = await self.resolve_repository(update) if self.github is not None else None
        chain = self.chain
        if cache_dir is not None:
            chain = ChangelogChain(self.chain.strategies, ChangelogCache(cache_dir, self.cache_ttl_seconds))
        context = AcquisitionContext(
            update=update,
            registry=self.registry,
            github=self.github,
            repository=repository,
        )
        return await chain.acquire(context)

    def project_files(self, project_path: Path, extra_excludes: Iterable[str] = ()) -> ProjectFiles:
        return ProjectFiles(
            project_path,
            exclude_patterns=[*self.scanner_config.exclude_patterns, *extra_excludes],
            max_file_size=self.scanner_config.max_file_size,
        )

    async def analyze_usage(self, package_name: str, project_path: Path) -> UsageAnalysis:
        """Scan the project for references to the package in a worker thread."""
        return await asyncio.to_thread(self.scan_usage, package_name, project_path)

    @abstractmethod
    def scan_usage(self, package_name: str, project_path: Path) -> UsageAnalysis:
        """Scan the project synchronously."""

    @abstractmethod
    def dependency_type(self, package_name: str, project_path: Path) -> DependencyType | None:
        """How the project declares the package, or None when no manifest names it."""

    def dependency_context(self, package_name: str, project_path: Path | None) -> dict[str, Any]:
        """``dependency_type`` and ``is_direct`` entries for the additional context."""
        if project_path is None:
            return {}
        dependency_type = self.dependency_type(package_name, project_path)
        if dependency_type is None:
            return {}
        return {
            "dependency_type": dependency_type.value,
            "is_direct": dependency_type != DependencyType.TRANSITIVE,
        }

    @abstractmethod
    async def get_additional_context(self, update: PackageUpdate, project_path: Path | None = None) -> dict[str, Any]:
        """Collect ecosystem-specific facts that inform the risk assessment.

        Args:
            update: The version bump.
            project_path: Project root; adds how the project declares the package.
        """

    @classmethod
    @abstractmethod
    def file_extensions(cls) -> tuple[str, ...]:
        """Source file extensions scanned for usage."""


class AnalyzerRegistry:
    """Fixed, ordered set of analyzers.

    Selection tries ``can_handle`` in order and returns the first match.
    The set cannot change after construction.
    """

    def __init__(self, analyzers: Iterable[EcosystemAnalyzer]) -> None:
        self._analyzers: tuple[EcosystemAnalyzer, ...] = tuple(analyzers)

    @classmethod
    def default(
        cls,
        npm_registry: RegistryProvider,
        pypi_registry: RegistryProvider,
        github: GitHubReleasesClient | None = None,
        scanner_config: ScannerConfig | None = None,
        cache_ttl_seconds: int | None = DEFAULT_TTL_SECONDS,
    ) -> "AnalyzerRegistry":
        """Build the standard registry: npm first, then PyPI."""
        from renovate_safety.analyzers.npm import NpmAnalyzer
        from renovate_safety.analyzers.pypi import PyPIAnalyzer

        shared = {"github": github, "scanner_config": scanner_config, "cache_ttl_seconds": cache_ttl_seconds}
        return cls(
            (
                NpmAnalyzer(npm_registry, **shared),
                PyPIAnalyzer(pypi_registry, **shared),
            )
        )

    @property
    def analyzers(self) -> tuple[EcosystemAnalyzer, ...]:
        return self._analyzers

    def select(self, package_name: str, project_path: Path) -> EcosystemAnalyzer | None:
        """Return the first analyzer that can handle the project."""
        for analyzer in self._analyzers:
            if analyzer.can_handle(package_name, project_path):
                logger.debug("Selected %s analyzer for %s", analyzer.ecosystem.value, package_name)
                return analyzer
        return None

    def for_ecosystem(self, ecosystem: Ecosystem) -> EcosystemAnalyzer | None:
        """Return the analyzer of an ecosystem."""
        for analyzer in self._analyzers:
            if analyzer.ecosystem == ecosystem:
                return analyzer
        return None
