"""Locating changelog sections inside long descriptions and changelog files."""

import re

from renovate_safety.utils.versions import version_in_range

# Headers that open an embedded changelog inside a README or long description
CHANGELOG_HEADER_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^#+\s*changelog",
        r"^#+\s*changes",
        r"^#+\s*release\s+notes",
        r"^#+\s*what'?s?\s+new",
        r"^#+\s*history",
    )
)
SECTION_END = re.compile(r"^#{1,2}\s")

# reStructuredText titles are a text line followed by an underline
RST_CHANGELOG_TITLE = re.compile(r"^(changelog|changes|release\s+notes|what'?s?\s+new|history)\s*$", re.IGNORECASE)
RST_UNDERLINE = re.compile(r"^([=\-~^*+#])\1{2,}\s*$")

_VERSION = r"v?(\d+\.\d+(?:\.\d+)?(?:[-.]?[a-z]+[\w.]*)?)"
VERSION_HEADER_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        rf"^#{{1,4}}\s*\[?{_VERSION}\]?",  # ## [1.2.3] or # v1.2.3
        rf"^{_VERSION}\s*(?:[-–—]\s*\d{{4}}|\(\d{{4}}-\d{{2}}-\d{{2}}\))",  # 1.2.3 - 2024-01-01
        rf"^Version\s+{_VERSION}",  # Version 1.2.3
        rf"^\*\*{_VERSION}\*\*",  # **1.2.3**
        rf"^{_VERSION}\s*$",  # bare RST title, checked with its underline
    )
)


def _markdown_section(lines: list[str]) -> str | None:
    for index, line in enumerate(lines):
        if not any(p.match(line.strip()) for p in CHANGELOG_HEADER_PATTERNS):
            continue
        body: list[str] = []
        for following in lines[index + 1 :]:
            if SECTION_END.match(following):
                break
            body.append(following)
        text = "\n".join(body).strip()
        if text:
            return text
    return None


def _rst_section(lines: list[str]) -> str | None:
    for index, line in enumerate(lines[:-1]):
        underline = RST_UNDERLINE.match(lines[index + 1])
        if not RST_CHANGELOG_TITLE.match(line.strip()) or not underline:
            continue
        marker = underline.group(1)
        body: list[str] = []
        position = index + 2
        while position < len(lines):
            # Same underline character means a sibling title: the section is over
            if position + 1 < len(lines) and lines[position].strip() and re.match(
                rf"^{re.escape(marker)}{{3,}}\s*$", lines[position + 1]
            ):
                break
            body.append(lines[position])
            position += 1
        text = "\n".join(body).strip()
        if text:
            return text
    return None


def extract_changelog_section(description: str) -> str | None:
    """Return the embedded changelog of a README or long description.

    Markdown headers (``## Changelog``, ``## Release Notes``, ``## What's new``)
    end at the next level-one or level-two header. reStructuredText titles end
    at the next title with the same underline character.
    """
    lines = description.splitlines()
    return _markdown_section(lines) or _rst_section(lines)


def _version_sections(lines: list[str]) -> list[tuple[str, int, int]]:
    """Split changelog lines into (version, start, end) sections by their headers."""
    sections: list[tuple[str, int, int]] = []
    current_version: str | None = None
    current_start = 0

    for index, line in enumerate(lines):
        stripped = line.strip()
        for number, pattern in enumerate(VERSION_HEADER_PATTERNS):
            match = pattern.match(stripped)
            if not match:
                continue
            is_bare = number == len(VERSION_HEADER_PATTERNS) - 1
            if is_bare and not (index + 1 < len(lines) and RST_UNDERLINE.match(lines[index + 1])):
                continue
            if current_version is not None:
                sections.append((current_version, current_start, index))
            current_version = match.group(1)
            current_start = index
            break

    if current_version is not None:
        sections.append((current_version, current_start, len(lines)))
    return sections


def has_version_headers(text: str) -> bool:
    """Check whether text contains at least one changelog version header."""
    return bool(_version_sections(text.splitlines()))


def extract_version_range(text: str, from_version: str, to_version: str) -> str:
    """Keep only the changelog sections for versions in ``(from, to]``.

    Args:
        text: Full changelog text.
        from_version: Starting version (exclusive).
        to_version: Target version (inclusive).

    Returns:
        The matching sections joined in document order, or an empty string
        when the text has version headers but none in range. Text without
        any version headers is returned unchanged.
    """
    lines = text.splitlines()
    sections = _version_sections(lines)
    if not sections:
        return text

    relevant: list[str] = []
    for version, start, end in sections:
        if version_in_range(version, from_version, to_version):
            relevant.extend(lines[start:end])
    return "\n".join(relevant).strip()
