"""PyPI ecosystem analyzer."""

from pathlib import Path
from typing import Any, ClassVar

from renovate_safety.analyzers.base import EcosystemAnalyzer
from renovate_safety.analyzers.dependencies import python_dependency_type
from renovate_safety.core.models import DependencyType, Ecosystem, PackageUpdate, UsageAnalysis, UsageLocation
from renovate_safety.errors import ValidationError
from renovate_safety.registry.pypi import PyPIClient
from renovate_safety.scanning import (
    PythonUsageScanner,
    categorize_usages,
    distribution_name_pattern,
    grep_config_files,
)
from renovate_safety.utils.logging import get_logger
from renovate_safety.validation import validate_pypi_package_name

logger = get_logger(__name__)

STUB_PREFIX = "types-"
STUB_SUFFIX = "-stubs"


def runtime_package_of(distribution: str) -> str | None:
    """Runtime distribution a stub package describes, or None."""
    name = distribution.lower()
    if name.startswith(STUB_PREFIX):
        return distribution[len(STUB_PREFIX) :]
    if name.endswith(STUB_SUFFIX):
        return distribution[: -len(STUB_SUFFIX)]
    return None


class PyPIAnalyzer(EcosystemAnalyzer):
    """Analyzer for PyPI distributions used from Python code."""

    ecosystem: ClassVar[Ecosystem] = Ecosystem.PYPI
    manifest_files: ClassVar[tuple[str, ...]] = (
        "requirements.txt",
        "setup.py",
        "pyproject.toml",
        "Pipfile",
        "setup.cfg",
    )
    config_file_patterns: ClassVar[tuple[str, ...]] = (
        "requirements*.txt",
        "requirements*.in",
        "constraints*.txt",
        "setup.py",
        "setup.cfg",
        "pyproject.toml",
        "Pipfile",
        "tox.ini",
        ".pre-commit-config.yaml",
    )

    registry: PyPIClient

    @classmethod
    def file_extensions(cls) -> tuple[str, ...]:
        return PythonUsageScanner.file_extensions

    def can_handle(self, package_name: str, project_path: Path) -> bool:
        """Check for a Python manifest and a PEP 508 package name."""
        if not self.has_manifest(project_path):
            return False
        try:
            validate_pypi_package_name(package_name)
        except ValidationError:
            return False
        return True

    def scan_usage(self, package_name: str, project_path: Path) -> UsageAnalysis:
        """Scan Python sources and packaging files for the distribution.

        Args:
            package_name: Distribution name as written in the update.
            project_path: Project root.

        Returns:
            Categorized usage of the package.
        """
        files = self.project_files(project_path)
        scanner = PythonUsageScanner(package_name)
        locations: list[UsageLocation] = []

        for path in files.find(self.file_extensions()):
            content = files.read_text(path)
            if not content or not any(module in content for module in scanner.module_names):
                continue
            locations.extend(scanner.scan(files.relative(path), content))

        locations.extend(
            grep_config_files(
                files,
                package_name,
                self.config_file_patterns,
                matcher=distribution_name_pattern(package_name),
            )
        )

        usage = categorize_usages(locations)
        logger.debug(
            "Found %d usages of %s (%d production, %d test, %d config)",
            usage.total_usage_count,
            package_name,
            usage.production_usage_count,
            usage.test_usage_count,
            usage.config_usage_count,
        )
        return usage

    def dependency_type(self, package_name: str, project_path: Path) -> DependencyType | None:
        return python_dependency_type(package_name, project_path)

    async def get_additional_context(self, update: PackageUpdate, project_path: Path | None = None) -> dict[str, Any]:
        """Collect PyPI-specific facts about an update.

        Returns:
            How the project declares the distribution, stub-package flags, the ``requires_python`` of the new release,
            obsoleted distributions, trove classifiers with alpha/beta
            flags and the yanked status.
        """
        context: dict[str, Any] = self.dependency_context(update.name, project_path)

        runtime_package = runtime_package_of(update.name)
        if runtime_package is not None:
            context["is_type_stub"] = True
            context["runtime_package"] = runtime_package

        release = await self.registry.fetch_release(update.name, update.to_version)
        if not release.ok or release.value is None:
            logger.debug("No release document for %s %s: %s", update.name, update.to_version, release.error)
            return context

        info = release.value.get("info") or {}
        if info.get("requires_python"):
            context["python_version_requirement"] = info["requires_python"]
        if info.get("obsoletes_dist"):
            context["obsoletes"] = info["obsoletes_dist"]

        classifiers = info.get("classifiers") or []
        if classifiers:
            context["classifiers"] = classifiers
            context["is_alpha"] = any("Alpha" in c or "Development Status :: 3" in c for c in classifiers)
            context["is_beta"] = any("Beta" in c or "Development Status :: 4" in c for c in classifiers)

        if info.get("yanked"):
            context["yanked"] = info.get("yanked_reason") or True

        return context
