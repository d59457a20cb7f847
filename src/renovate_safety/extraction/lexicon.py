"""Pattern tables used to recognize breaking changes in free text.

Everything here is data: the extractor walks these tables in order and never
embeds a pattern in its control flow.
"""

import re
from dataclasses import dataclass

from renovate_safety.core.models import ChangeCategory, ChangeSeverity


@dataclass(frozen=True)
class LexiconEntry:
    """A single marker of a breaking, removal or warning line."""

    pattern: re.Pattern[str]
    severity: ChangeSeverity
    category: ChangeCategory
    confidence: float


def _entry(
    pattern: str,
    severity: ChangeSeverity,
    category: ChangeCategory,
    confidence: float,
    flags: int = re.IGNORECASE,
) -> LexiconEntry:
    return LexiconEntry(re.compile(pattern, flags), severity, category, confidence)


_B = ChangeSeverity.BREAKING
_W = ChangeSeverity.WARNING
_R = ChangeSeverity.REMOVAL

# Order matters: only the first matching entry is applied to a line.
BREAKING_LEXICON: tuple[LexiconEntry, ...] = (
    # Explicit breaking change markers
    _entry(r"BREAKING\s*CHANGE", _B, ChangeCategory.DOCUMENTED_CHANGE, 0.9),
    _entry(r"BREAKING:", _B, ChangeCategory.DOCUMENTED_CHANGE, 0.9),
    _entry(r"\[BREAKING\]", _B, ChangeCategory.DOCUMENTED_CHANGE, 0.9),
    _entry("\U0001f4a5", _B, ChangeCategory.DOCUMENTED_CHANGE, 0.85, flags=0),
    # Warning indicators
    _entry("⚠️?", _W, ChangeCategory.DOCUMENTED_CHANGE, 0.6, flags=0),
    _entry(r"\[WARNING\]", _W, ChangeCategory.DOCUMENTED_CHANGE, 0.6),
    _entry(r"\[DEPRECATED\]", _W, ChangeCategory.DEPRECATION, 0.7),
    _entry(r"DEPRECATED:", _W, ChangeCategory.DEPRECATION, 0.7),
    # Removal indicators
    _entry(r"\*\s*Removed", _R, ChangeCategory.REMOVAL, 0.8),
    _entry(r"\*\s*Deleted", _R, ChangeCategory.REMOVAL, 0.8),
    _entry(r"\[REMOVED\]", _R, ChangeCategory.REMOVAL, 0.8),
    _entry(r"\[DELETED\]", _R, ChangeCategory.REMOVAL, 0.8),
    # API changes
    _entry(r"API\s*CHANGE", _W, ChangeCategory.API_CHANGE, 0.7),
    _entry(r"INCOMPATIBLE", _B, ChangeCategory.DOCUMENTED_CHANGE, 0.8),
    _entry(r"NOT\s*BACKWARDS?\s*COMPATIBLE", _B, ChangeCategory.DOCUMENTED_CHANGE, 0.85),
    # Migration required
    _entry(r"MIGRATION\s*REQUIRED", _B, ChangeCategory.DOCUMENTED_CHANGE, 0.8),
    _entry(r"REQUIRES\s*MIGRATION", _B, ChangeCategory.DOCUMENTED_CHANGE, 0.8),
    # Renamed or moved
    _entry(r"\*\s*Renamed", _W, ChangeCategory.API_CHANGE, 0.65),
    _entry(r"\*\s*Moved", _W, ChangeCategory.API_CHANGE, 0.65),
    _entry(r"\[RENAMED\]", _W, ChangeCategory.API_CHANGE, 0.65),
    _entry(r"\[MOVED\]", _W, ChangeCategory.API_CHANGE, 0.65),
)

# Headers that open a section whose list items are all breaking changes
SECTION_HEADER_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^#+\s*Breaking\s*Changes?",
        r"^Breaking\s*Changes?:",
        r"^#+\s*\[Breaking\s*Changes?\]",
        r"^#+\s*\U0001f4a5\s*Breaking",
        r"^#+\s*Incompatible\s*Changes?",
        r"^#+\s*API\s*Breaking\s*Changes?",
        r"^\*\*Breaking\s*Changes?:?\*\*:?$",
    )
)

SECTION_CONFIDENCE = 0.85

ANY_HEADER = re.compile(r"^#+\s")
LIST_ITEM = re.compile(r"^[-*•+]\s")
CONTINUATION = re.compile(r"^\s{2,}\S")

# Commit messages announcing an incompatible change
COMMIT_BREAKING_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"BREAKING[\s-]CHANGE", re.IGNORECASE),
    re.compile(r"BREAKING:", re.IGNORECASE),
    re.compile(r"\[BREAKING\]", re.IGNORECASE),
    re.compile("\U0001f4a5"),
    re.compile(r"^\w+(\([^)]*\))?!:"),
    re.compile(r"\bbc\b:", re.IGNORECASE),
    re.compile(r"incompatible", re.IGNORECASE),
    re.compile(r"\bmajor\b.*\bchange", re.IGNORECASE),
)

# Markers documented in changed README/CHANGELOG files of a package diff
DOCUMENTED_DIFF_PATTERNS: tuple[tuple[re.Pattern[str], float], ...] = (
    (re.compile(r"BREAKING CHANGES?[:\s]+(.+)$", re.IGNORECASE), 0.9),
    (re.compile(r"\[BREAKING\][:\s]+(.+)$", re.IGNORECASE), 0.9),
    (re.compile("\U0001f4a5[:\\s]+(.+)$"), 0.85),
)

# Text describing purely additive changes
NON_BREAKING_ADDITION = re.compile(r"(?:added|new).+(?:method|function|feature)", re.IGNORECASE)
BREAKING_VERBS = re.compile(r"removed|changed|renamed|replace", re.IGNORECASE)


def has_breaking_markers(text: str) -> bool:
    """Check whether text carries any breaking-severity marker or section."""
    for line in text.splitlines():
        stripped = line.strip()
        if any(p.match(stripped) for p in SECTION_HEADER_PATTERNS):
            return True
        if any(e.pattern.search(stripped) for e in BREAKING_LEXICON if e.severity == _B):
            return True
    return False
