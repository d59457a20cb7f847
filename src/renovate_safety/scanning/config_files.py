"""Literal package-name search in configuration files."""

import re
from collections.abc import Iterable

from renovate_safety.core.models import UsageLocation, UsageType
from renovate_safety.scanning.context import classify_file_context
from renovate_safety.scanning.files import ProjectFiles

# Lockfiles list every transitive package and say nothing about how it is used
LOCKFILE_NAMES = frozenset(
    {
        "package-lock.json",
        "npm-shrinkwrap.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "poetry.lock",
        "Pipfile.lock",
        "uv.lock",
    }
)


def package_name_pattern(package_name: str) -> re.Pattern[str]:
    """Regex matching the package name as a whole token.

    ``react`` must not match inside ``react-dom`` or ``@types/react``.
    """
    return re.compile(rf"(?<![\w@/.-]){re.escape(package_name)}(?![\w-])", re.IGNORECASE)


def distribution_name_pattern(distribution: str) -> re.Pattern[str]:
    """Regex matching any spelling of a PyPI name that normalizes to the same project.

    ``python-dateutil``, ``python_dateutil`` and ``Python.Dateutil`` all match.
    """
    parts = [re.escape(p) for p in re.split(r"[-_.]+", distribution) if p]
    return re.compile(rf"(?<![\w@/.-]){'[-_.]+'.join(parts)}(?![\w-])", re.IGNORECASE)


def grep_config_files(
    files: ProjectFiles,
    package_name: str,
    patterns: Iterable[str],
    matcher: re.Pattern[str] | None = None,
) -> list[UsageLocation]:
    """Report every literal mention of a package in matching config files.

    Args:
        files: Project file walker.
        package_name: Package name to look for.
        patterns: Filename glob patterns of config files to search.
        matcher: Pattern to search for instead of the literal package name.

    Returns:
        One ``config`` location per occurrence.
    """
    matcher = matcher or package_name_pattern(package_name)
    locations: list[UsageLocation] = []

    for path in files.find_matching(patterns):
        if path.name in LOCKFILE_NAMES:
            continue
        content = files.read_text(path)
        if not content or not matcher.search(content):
            continue

        relative = files.relative(path)
        for line_number, line in enumerate(content.splitlines(), start=1):
            for match in matcher.finditer(line):
                locations.append(
                    UsageLocation(
                        file=relative,
                        line=line_number,
                        column=match.start(),
                        type=UsageType.CONFIG,
                        code=line.strip()[:200],
                        context=classify_file_context(relative),
                    )
                )

    return locations
