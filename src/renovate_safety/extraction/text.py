"""Breaking-change extraction from free-form changelog text."""

import math
import re
from collections.abc import Iterable

from renovate_safety.core.models import (
    SEVERITY_ORDER,
    BreakingChange,
    ChangeCategory,
    ChangeSeverity,
)
from renovate_safety.extraction.lexicon import (
    ANY_HEADER,
    BREAKING_LEXICON,
    CONTINUATION,
    LIST_ITEM,
    SECTION_CONFIDENCE,
    SECTION_HEADER_PATTERNS,
)

MAX_CHANGE_LENGTH = 500
CHARS_PER_TOKEN = 4

_LIST_MARKER = re.compile(r"^\s*(?:[-*•+]|\d+[.)])\s+")
_MARKER_PREFIX = re.compile(
    r"^(?:breaking\s*changes?|breaking|\[breaking\]|\U0001f4a5|⚠️?|note)\s*[:\-]?\s*",
    re.IGNORECASE,
)
_FENCE = re.compile(r"^\s*(```|~~~)")


def normalize_change_key(text: str) -> str:
    """Key under which two change descriptions count as the same change.

    Lower-cases, drops list markers, emphasis and ``BREAKING CHANGE:``-style
    prefixes, collapses whitespace and trims a trailing period, so that
    ``BREAKING CHANGE: remove X`` and ``- remove X`` share a key.
    """
    key = text.strip().lower().replace("**", "").replace("__", "")
    key = _LIST_MARKER.sub("", key)
    previous = None
    while previous != key:
        previous = key
        key = _MARKER_PREFIX.sub("", key).strip()
    key = re.sub(r"\s+", " ", key)
    return key.rstrip(".").strip()


def sort_breaking_changes(changes: Iterable[BreakingChange]) -> list[BreakingChange]:
    """Order by severity, then confidence descending, then text."""
    return sorted(
        changes,
        key=lambda c: (SEVERITY_ORDER[c.severity], -c.confidence, c.text),
    )


def merge_breaking_changes(*groups: Iterable[BreakingChange]) -> list[BreakingChange]:
    """Merge several result lists, keeping the first entry per normalized key.

    Groups are given in trust order, so an entry from an earlier group wins
    over a duplicate found later.
    """
    seen: set[str] = set()
    merged: list[BreakingChange] = []
    for group in groups:
        for change in group:
            key = normalize_change_key(change.text)
            if not key or key in seen:
                continue
            seen.add(key)
            merged.append(change)
    return sort_breaking_changes(merged)


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def filter_by_token_limit(changes: list[BreakingChange], max_tokens: int) -> list[BreakingChange]:
    """Keep the highest-priority changes that fit into a token budget.

    Args:
        changes: Extracted breaking changes.
        max_tokens: Budget, estimated at four characters per token.

    Returns:
        A severity-ordered prefix of the changes whose texts fit the budget.
    """
    kept: list[BreakingChange] = []
    used = 0
    for change in sort_breaking_changes(changes):
        tokens = estimate_tokens(change.text)
        if used + tokens > max_tokens:
            break
        kept.append(change)
        used += tokens
    return kept


def summarize_breaking_changes(changes: list[BreakingChange]) -> dict[str, int]:
    """Count changes per severity.

    Returns:
        Mapping with a ``total`` entry and one entry per severity value.
    """
    summary = {"total": len(changes)}
    for severity in ChangeSeverity:
        summary[severity.value] = sum(1 for c in changes if c.severity == severity)
    return summary


class BreakingChangeExtractor:
    """Applies the breaking-change lexicon to changelog text.

    Two passes run over the text. The first matches every line against the
    lexicon table, taking only the first entry that matches. The second
    harvests all list items below a "Breaking Changes" style header until
    the next header. Results from both passes are deduplicated on their
    normalized key and returned in severity order.
    """

    def extract(self, text: str, source: str) -> list[BreakingChange]:
        """Extract breaking changes from a changelog.

        Args:
            text: Changelog, release notes or description text.
            source: Evidence label recorded on each entry.

        Returns:
            Deduplicated, sorted breaking changes.
        """
        if not text or not text.strip():
            return []

        lines = self._visible_lines(text)
        found = self._lexicon_matches(lines, source) + self._section_items(lines, source)
        return merge_breaking_changes(found)

    @staticmethod
    def _visible_lines(text: str) -> list[str]:
        """Lines outside fenced code blocks; fenced lines are blanked."""
        lines: list[str] = []
        in_fence = False
        for line in text.splitlines():
            if _FENCE.match(line):
                in_fence = not in_fence
                lines.append("")
                continue
            lines.append("" if in_fence else line)
        return lines

    @staticmethod
    def _is_section_header(line: str) -> bool:
        stripped = line.strip()
        return any(p.match(stripped) for p in SECTION_HEADER_PATTERNS)

    @staticmethod
    def _with_continuation(lines: list[str], index: int) -> str:
        """Join a list item with its indented continuation lines."""
        parts = [lines[index].strip()]
        for following in lines[index + 1 :]:
            if not CONTINUATION.match(following) or LIST_ITEM.match(following.strip()):
                break
            parts.append(following.strip())
        return " ".join(parts)[:MAX_CHANGE_LENGTH]

    def _lexicon_matches(self, lines: list[str], source: str) -> list[BreakingChange]:
        changes: list[BreakingChange] = []
        for index, line in enumerate(lines):
            stripped = line.strip()
            if not stripped or self._is_section_header(stripped):
                continue

            for entry in BREAKING_LEXICON:
                if not entry.pattern.search(stripped):
                    continue
                text = (
                    self._with_continuation(lines, index)
                    if LIST_ITEM.match(stripped)
                    else stripped[:MAX_CHANGE_LENGTH]
                )
                changes.append(
                    BreakingChange(
                        text=text,
                        severity=entry.severity,
                        source=source,
                        category=entry.category,
                        confidence=entry.confidence,
                    )
                )
                break
        return changes

    def _section_items(self, lines: list[str], source: str) -> list[BreakingChange]:
        changes: list[BreakingChange] = []
        in_section = False
        for index, line in enumerate(lines):
            stripped = line.strip()
            if self._is_section_header(stripped):
                in_section = True
                continue
            if ANY_HEADER.match(stripped):
                in_section = False
                continue
            if in_section and LIST_ITEM.match(stripped):
                changes.append(
                    BreakingChange(
                        text=self._with_continuation(lines, index),
                        severity=ChangeSeverity.BREAKING,
                        source=source,
                        category=ChangeCategory.DOCUMENTED_CHANGE,
                        confidence=SECTION_CONFIDENCE,
                    )
                )
        return changes
