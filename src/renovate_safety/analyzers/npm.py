"""npm ecosystem analyzer."""

import json
from pathlib import Path
from typing import Any, ClassVar

from renovate_safety.analyzers.base import EcosystemAnalyzer
from renovate_safety.analyzers.dependencies import npm_dependency_type
from renovate_safety.core.models import DependencyType, Ecosystem, PackageUpdate, UsageAnalysis, UsageLocation
from renovate_safety.errors import ValidationError
from renovate_safety.registry.npm import NpmRegistryClient, entry_points_of
from renovate_safety.scanning import JavaScriptUsageScanner, categorize_usages, grep_config_files
from renovate_safety.utils.logging import get_logger
from renovate_safety.validation import validate_npm_package_name

logger = get_logger(__name__)

DEPENDENCY_FIELDS = ("dependencies", "devDependencies", "peerDependencies", "optionalDependencies")

# Files marking a Python project; a mixed repository only routes declared npm packages here
PYTHON_MANIFESTS = ("pyproject.toml", "setup.py", "setup.cfg", "requirements.txt", "Pipfile")

TYPES_SCOPE = "@types/"


def read_package_json(project_path: Path) -> dict[str, Any]:
    """Load the project's package.json, returning an empty dict if unreadable."""
    try:
        data = json.loads((project_path / "package.json").read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug("Could not read package.json in %s: %s", project_path, e)
        return {}
    return data if isinstance(data, dict) else {}


def declared_dependencies(manifest: dict[str, Any]) -> set[str]:
    """Every package named in the manifest's dependency fields."""
    names: set[str] = set()
    for field in DEPENDENCY_FIELDS:
        value = manifest.get(field)
        if isinstance(value, dict):
            names.update(value)
    return names


def project_entry_points(manifest: dict[str, Any]) -> list[str]:
    """Entry files of the analyzed project: main/module/types/exports plus bin scripts."""
    entries = entry_points_of(manifest)
    bin_field = manifest.get("bin")
    scripts: list[Any] = []
    if isinstance(bin_field, str):
        scripts = [bin_field]
    elif isinstance(bin_field, dict):
        scripts = list(bin_field.values())
    for script in scripts:
        if isinstance(script, str):
            script = script.removeprefix("./")
            if script and script not in entries:
                entries.append(script)
    return entries


def runtime_package_of(package_name: str) -> str | None:
    """Runtime package a ``@types/*`` package describes.

    ``@types/node`` describes ``node``; ``@types/babel__core`` describes
    ``@babel/core``.
    """
    if not package_name.startswith(TYPES_SCOPE):
        return None
    name = package_name[len(TYPES_SCOPE) :]
    if "__" in name:
        scope, _, rest = name.partition("__")
        return f"@{scope}/{rest}"
    return name


class NpmAnalyzer(EcosystemAnalyzer):
    """Analyzer for npm packages used from JavaScript and TypeScript."""

    ecosystem: ClassVar[Ecosystem] = Ecosystem.NPM
    manifest_files: ClassVar[tuple[str, ...]] = ("package.json",)
    config_file_patterns: ClassVar[tuple[str, ...]] = (
        "*.json",
        "*.yaml",
        "*.yml",
        "*.toml",
        ".npmrc",
        "*.config.js",
        "*.config.cjs",
        "*.config.mjs",
        "*.config.ts",
    )
    build_excludes: ClassVar[tuple[str, ...]] = (".next", "*.map", "*.d.ts.map")

    registry: NpmRegistryClient

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._scanner: JavaScriptUsageScanner | None = None

    @property
    def scanner(self) -> JavaScriptUsageScanner:
        # Grammars are loaded on first use
        if self._scanner is None:
            self._scanner = JavaScriptUsageScanner()
        return self._scanner

    @classmethod
    def file_extensions(cls) -> tuple[str, ...]:
        return JavaScriptUsageScanner.file_extensions()

    def can_handle(self, package_name: str, project_path: Path) -> bool:
        """Check for a package.json and an npm-valid package name.

        When the project also carries Python manifests the package must be
        declared in package.json, so PyPI packages of mixed repositories
        fall through to the PyPI analyzer.
        """
        if not self.has_manifest(project_path):
            return False
        try:
            validate_npm_package_name(package_name)
        except ValidationError:
            return False

        if any((project_path / name).is_file() for name in PYTHON_MANIFESTS):
            return package_name in declared_dependencies(read_package_json(project_path))
        return True

    def scan_usage(self, package_name: str, project_path: Path) -> UsageAnalysis:
        """Scan JavaScript/TypeScript sources and config files for the package.

        Args:
            package_name: npm package name.
            project_path: Project root.

        Returns:
            Categorized usage of the package.
        """
        files = self.project_files(project_path, self.build_excludes)
        # Type packages are imported under their runtime name
        needle = runtime_package_of(package_name) or package_name
        locations: list[UsageLocation] = []

        for path in files.find(self.file_extensions()):
            content = files.read_text(path)
            if not content or needle not in content:
                continue
            locations.extend(self.scanner.scan(files.relative(path), content, needle))

        locations.extend(grep_config_files(files, package_name, self.config_file_patterns))

        usage = categorize_usages(locations, project_entry_points(read_package_json(project_path)))
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
        """Dependency field of package.json naming the package, or transitive via a lockfile."""
        return npm_dependency_type(read_package_json(project_path), package_name, project_path)

    async def get_additional_context(self, update: PackageUpdate, project_path: Path | None = None) -> dict[str, Any]:
        """Collect npm-specific facts about an update.

        Returns:
            How the project declares the package, type-definition flags,
            deprecation, weekly downloads, the ``engines`` field of both
            versions, declared entry points and whether both versions
            publish a tarball to diff.
        """
        context: dict[str, Any] = self.dependency_context(update.name, project_path)

        runtime_package = runtime_package_of(update.name)
        if runtime_package is not None:
            context["is_type_definition"] = True
            context["runtime_package"] = runtime_package

        before = await self.registry.fetch_version_manifest(update.name, update.from_version)
        after = await self.registry.fetch_version_manifest(update.name, update.to_version)
        if after.ok and after.value is not None:
            manifest = after.value
            if isinstance(manifest.get("deprecated"), str) and manifest["deprecated"]:
                context["deprecated"] = manifest["deprecated"]
            context["entry_points"] = entry_points_of(manifest)
        else:
            logger.debug("No manifest for %s@%s: %s", update.name, update.to_version, after.error)

        engines = {
            "before": (before.value or {}).get("engines") if before.ok else None,
            "after": (after.value or {}).get("engines") if after.ok else None,
        }
        if engines["before"] or engines["after"]:
            context["engines"] = engines

        context["has_registry_diff"] = all(
            result.ok and bool(((result.value or {}).get("dist") or {}).get("tarball"))
            for result in (before, after)
        )

        downloads = await self.registry.fetch_weekly_downloads(update.name)
        if downloads.ok:
            context["weekly_downloads"] = downloads.value

        return context
