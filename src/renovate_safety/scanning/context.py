"""Path-based file classification and usage categorization."""

import re
from collections.abc import Iterable
from pathlib import PurePosixPath

from renovate_safety.core.models import FileContext, UsageAnalysis, UsageLocation, UsageType

# Substrings of a lower-cased path marking test code
TEST_MARKERS = ("test", "spec", "__tests__", "__mocks__", "conftest", "e2e")

# Ordinary words containing a test marker; removed from the path before matching
NOT_TEST_WORDS = (
    "latest",
    "fastest",
    "greatest",
    "shortest",
    "contest",
    "protest",
    "attest",
    "detest",
    "inspect",
    "respect",
    "aspect",
    "prospect",
    "suspect",
    "special",
    "specif",
    "spectr",
)

CONFIG_FILENAMES = frozenset(
    {
        "package.json",
        "package-lock.json",
        "npm-shrinkwrap.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "pnpm-workspace.yaml",
        "tsconfig.json",
        "jsconfig.json",
        ".npmrc",
        ".yarnrc",
        ".nvmrc",
        ".env",
        "pyproject.toml",
        "setup.py",
        "setup.cfg",
        "pipfile",
        "pipfile.lock",
        "poetry.lock",
        "tox.ini",
        "manifest.in",
        "renovate.json",
    }
)

CONFIG_EXTENSIONS = frozenset({".toml", ".yaml", ".yml", ".ini", ".cfg", ".json", ".lock"})

# Bundler, linter and test-runner config files such as vite.config.ts or .eslintrc.js
CONFIG_NAME_PATTERNS = (
    re.compile(r"^[\w-]+\.config\.[cm]?[jt]s$"),
    re.compile(r"^\.(eslint|prettier|babel|stylelint|mocha|swc)rc(\.[\w]+)?$"),
    re.compile(r"^requirements([-_.][\w-]+)?\.(txt|in)$"),
)

BUILD_DIRECTORIES = frozenset({"dist", "build", ".next", "out"})

ENTRY_POINT_STEMS = frozenset({"index", "main", "app", "server", "cli", "__init__", "__main__"})
CORE_DIRECTORIES = frozenset({"src", "lib", "app"})

DYNAMIC_IMPORT_MARKERS = ("import(", "importlib.import_module", "__import__")

_NOT_TEST_WORDS = re.compile("|".join(NOT_TEST_WORDS))


def is_package_import(module_specifier: str, package_name: str) -> bool:
    """Check whether a module specifier refers to a package.

    Matches the package itself and any subpath of it. Scoped names are
    compared as a whole, so ``@scope/pkg`` matches ``@scope/pkg/sub`` but not
    ``@scope/pkg-extra``, and ``express`` does not match ``express-session``.
    """
    if not module_specifier or not package_name:
        return False
    if module_specifier == package_name:
        return True
    return module_specifier.startswith(f"{package_name}/")


def _normalize(file_path: str) -> PurePosixPath:
    return PurePosixPath(file_path.replace("\\", "/").lower())


def classify_file_context(file_path: str) -> FileContext:
    """Classify a file by its path alone.

    Checked in priority order: test, config, build, production.
    """
    path = _normalize(file_path)
    masked = _NOT_TEST_WORDS.sub("/", str(path))

    if any(marker in masked for marker in TEST_MARKERS):
        return FileContext.TEST

    name = path.name
    if (
        name in CONFIG_FILENAMES
        or path.suffix in CONFIG_EXTENSIONS
        or any(pattern.match(name) for pattern in CONFIG_NAME_PATTERNS)
    ):
        return FileContext.CONFIG

    if any(part in BUILD_DIRECTORIES for part in path.parts[:-1]):
        return FileContext.BUILD

    return FileContext.PRODUCTION


def is_critical_path(file_path: str, entry_points: Iterable[str] = ()) -> bool:
    """Judge whether a production file is an entry point or core module."""
    path = _normalize(file_path)
    normalized_entries = {str(_normalize(entry)).removeprefix("./") for entry in entry_points}
    if str(path) in normalized_entries:
        return True
    if path.stem in ENTRY_POINT_STEMS:
        return True
    return len(path.parts) == 2 and path.parts[0] in CORE_DIRECTORIES


def categorize_usages(
    locations: list[UsageLocation],
    entry_points: Iterable[str] = (),
) -> UsageAnalysis:
    """Aggregate usage locations into a ``UsageAnalysis``.

    Args:
        locations: Every occurrence found by the scanners.
        entry_points: Manifest entry files, relative to the project root.

    Returns:
        Counts by context, the sorted critical paths and the dynamic-import flag.
    """
    entry_points = list(entry_points)
    counts = {context: 0 for context in FileContext}
    critical_paths: set[str] = set()
    has_dynamic_imports = False

    for location in locations:
        # Manifest mentions are config usage wherever the manifest lives
        context = FileContext.CONFIG if location.type == UsageType.CONFIG else location.context
        counts[context] += 1

        if context == FileContext.PRODUCTION and is_critical_path(
            location.file, entry_points
        ):
            critical_paths.add(location.file)

        if location.type == UsageType.REQUIRE and any(
            marker in location.code for marker in DYNAMIC_IMPORT_MARKERS
        ):
            has_dynamic_imports = True

    return UsageAnalysis(
        locations=locations,
        total_usage_count=len(locations),
        production_usage_count=counts[FileContext.PRODUCTION],
        test_usage_count=counts[FileContext.TEST],
        # Build output is configuration-like for risk purposes
        config_usage_count=counts[FileContext.CONFIG] + counts[FileContext.BUILD],
        critical_paths=sorted(critical_paths),
        has_dynamic_imports=has_dynamic_imports,
    )
