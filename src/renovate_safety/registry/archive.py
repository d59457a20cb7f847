"""Reading published package archives and diffing their contents.

Archives are read in memory; nothing is written to disk, so member paths
never touch the file system. Only small text files that can matter for
breaking-change analysis are kept.
"""

import difflib
import io
import re
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import PurePosixPath

from renovate_safety.errors import MalformedInputError
from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)

MAX_ARCHIVE_BYTES = 50 * 1024 * 1024
MAX_MEMBER_BYTES = 1024 * 1024
MAX_MEMBERS = 5000

TEXT_EXTENSIONS = (
    ".js", ".mjs", ".cjs", ".jsx", ".ts", ".mts", ".cts", ".tsx",
    ".py", ".pyi", ".json", ".md", ".rst", ".txt", ".toml", ".cfg",
)
TEXT_FILENAMES = frozenset({"PKG-INFO", "METADATA", "setup.py", "setup.cfg"})

# Python sources are diffed with full context so both versions can be parsed again
FULL_CONTEXT_EXTENSIONS = (".py", ".pyi")

_EXPORT_REMOVAL = re.compile(r"^-\s*(?:export\s|exports\.|module\.exports|def\s|class\s|async\s+def\s)")


@dataclass
class ArchiveDiff:
    """Unified diff between two archives plus summary statistics."""

    content: str
    files_changed: int
    additions: int
    deletions: int
    export_removals: int

    def render(self, title: str) -> str:
        """Diff text preceded by a statistics header."""
        header = (
            f"# {title}\n"
            f"# files changed: {self.files_changed}, additions: {self.additions}, "
            f"deletions: {self.deletions}, export removals: {self.export_removals}\n"
        )
        return f"{header}\n{self.content}" if self.content else header


def _is_wanted(path: str) -> bool:
    name = PurePosixPath(path).name
    return name in TEXT_FILENAMES or name.endswith(TEXT_EXTENSIONS)


def _is_safe_member_path(path: str) -> bool:
    pure = PurePosixPath(path)
    return not pure.is_absolute() and ".." not in pure.parts


def _decode(data: bytes) -> str | None:
    if b"\0" in data[:1024]:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def strip_common_root(files: dict[str, str]) -> dict[str, str]:
    """Drop a single top-level directory shared by every path (``package/``, ``name-1.0/``)."""
    roots = {path.split("/", 1)[0] for path in files}
    if len(roots) != 1 or not all("/" in path for path in files):
        return files
    return {path.split("/", 1)[1]: content for path, content in files.items()}


def read_archive(data: bytes, filename: str) -> dict[str, str]:
    """Read the text files of a package archive.

    Args:
        data: Raw archive bytes (``.tgz``, ``.tar.gz``, ``.zip`` or ``.whl``).
        filename: Archive file name, used to pick the format.

    Returns:
        Mapping of member path (common root removed) to text content.

    Raises:
        MalformedInputError: If the archive is too large or cannot be read.
    """
    if len(data) > MAX_ARCHIVE_BYTES:
        raise MalformedInputError(f"Archive {filename} exceeds {MAX_ARCHIVE_BYTES} bytes")

    files: dict[str, str] = {}
    try:
        if filename.endswith((".zip", ".whl")):
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                for info in archive.infolist()[:MAX_MEMBERS]:
                    if info.is_dir() or info.file_size > MAX_MEMBER_BYTES:
                        continue
                    if not _is_safe_member_path(info.filename) or not _is_wanted(info.filename):
                        continue
                    text = _decode(archive.read(info))
                    if text is not None:
                        files[info.filename] = text
        else:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
                for count, member in enumerate(archive):
                    if count >= MAX_MEMBERS:
                        break
                    if not member.isfile() or member.size > MAX_MEMBER_BYTES:
                        continue
                    if not _is_safe_member_path(member.name) or not _is_wanted(member.name):
                        continue
                    handle = archive.extractfile(member)
                    if handle is None:
                        continue
                    text = _decode(handle.read())
                    if text is not None:
                        files[member.name] = text
    except (tarfile.TarError, zipfile.BadZipFile, OSError, EOFError) as e:
        raise MalformedInputError(f"Could not read archive {filename}: {e}") from e

    return strip_common_root(files)


def diff_archives(old: dict[str, str], new: dict[str, str]) -> ArchiveDiff:
    """Build a unified diff between two archive listings.

    Args:
        old: Files of the old version.
        new: Files of the new version.

    Returns:
        Concatenated per-file unified diffs and statistics.
    """
    chunks: list[str] = []
    files_changed = additions = deletions = export_removals = 0

    for path in sorted(set(old) | set(new)):
        before = old.get(path)
        after = new.get(path)
        if before == after:
            continue

        old_lines = (before or "").splitlines()
        new_lines = (after or "").splitlines()
        context = max(len(old_lines), len(new_lines)) if path.endswith(FULL_CONTEXT_EXTENSIONS) else 3
        lines = list(
            difflib.unified_diff(
                old_lines,
                new_lines,
                fromfile=f"a/{path}" if before is not None else "/dev/null",
                tofile=f"b/{path}" if after is not None else "/dev/null",
                n=context,
                lineterm="",
            )
        )
        if not lines:
            continue

        files_changed += 1
        for line in lines[2:]:
            if line.startswith("+"):
                additions += 1
            elif line.startswith("-"):
                deletions += 1
                if _EXPORT_REMOVAL.match(line):
                    export_removals += 1
        chunks.append("\n".join(lines))

    logger.debug("Archive diff: %d files changed", files_changed)
    return ArchiveDiff(
        content="\n".join(chunks),
        files_changed=files_changed,
        additions=additions,
        deletions=deletions,
        export_removals=export_removals,
    )
