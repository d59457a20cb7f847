"""Project file discovery for the usage scanners."""

import fnmatch
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)

# Default patterns to exclude from scanning
DEFAULT_EXCLUDE_PATTERNS = [
    "node_modules",
    ".git",
    "__pycache__",
    ".venv",
    "venv",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    "coverage",
    "*.min.js",
    "*.bundle.js",
]

DEFAULT_MAX_FILE_SIZE = 1_000_000


class ProjectFiles:
    """Walks a project tree and yields files worth scanning.

    Excluded directories are pruned during the walk instead of filtered
    afterwards, which keeps ``node_modules`` trees from being traversed.
    """

    def __init__(
        self,
        root: Path,
        exclude_patterns: Iterable[str] | None = None,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ) -> None:
        """Initialize the walker.

        Args:
            root: Project root directory.
            exclude_patterns: Directory names or glob patterns to skip.
            max_file_size: Files larger than this many bytes are skipped.
        """
        self.root = root
        self.exclude_patterns = list(
            DEFAULT_EXCLUDE_PATTERNS if exclude_patterns is None else exclude_patterns
        )
        self.max_file_size = max_file_size

    def is_excluded(self, name: str) -> bool:
        """Check a single path component against the exclude patterns."""
        return any(fnmatch.fnmatch(name, pattern) for pattern in self.exclude_patterns)

    def walk(self) -> Iterator[Path]:
        """Yield every non-excluded regular file under the root."""
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not self.is_excluded(d))
            for filename in sorted(filenames):
                if not self.is_excluded(filename):
                    yield Path(dirpath) / filename

    def find(self, extensions: Iterable[str]) -> list[Path]:
        """Find files with one of the given extensions.

        Args:
            extensions: Extensions including the dot, e.g. ``".ts"``.

        Returns:
            Sorted list of matching file paths.
        """
        wanted = tuple(extensions)
        return [path for path in self.walk() if path.name.endswith(wanted)]

    def find_matching(self, patterns: Iterable[str]) -> list[Path]:
        """Find files whose name matches one of the glob patterns."""
        patterns = list(patterns)
        return [
            path
            for path in self.walk()
            if any(fnmatch.fnmatch(path.name, pattern) for pattern in patterns)
        ]

    def relative(self, path: Path) -> str:
        """Return the POSIX path of a file relative to the project root."""
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return path.as_posix()

    def read_text(self, path: Path) -> str | None:
        """Read a file as UTF-8, returning None for oversized or unreadable files."""
        try:
            if path.stat().st_size > self.max_file_size:
                logger.debug("Skipping %s: larger than %d bytes", path, self.max_file_size)
                return None
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Skipping unreadable file %s: %s", path, e)
            return None
