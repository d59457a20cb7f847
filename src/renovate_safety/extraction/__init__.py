"""Breaking-change extraction.

- lexicon: pattern tables for markers, sections and commit messages
- text: lexicon-driven extraction from changelog prose
- diff: export, signature and manifest analysis of package diffs
- extractor: dispatch from acquired evidence to the right analysis
"""

from renovate_safety.extraction.diff import DiffAnalyzer, FileDiff, split_unified_diff
from renovate_safety.extraction.extractor import extract_breaking_changes
from renovate_safety.extraction.lexicon import (
    BREAKING_LEXICON,
    COMMIT_BREAKING_PATTERNS,
    LexiconEntry,
    has_breaking_markers,
)
from renovate_safety.extraction.text import (
    BreakingChangeExtractor,
    estimate_tokens,
    filter_by_token_limit,
    merge_breaking_changes,
    normalize_change_key,
    summarize_breaking_changes,
)

__all__ = [
    "BREAKING_LEXICON",
    "COMMIT_BREAKING_PATTERNS",
    "BreakingChangeExtractor",
    "DiffAnalyzer",
    "FileDiff",
    "LexiconEntry",
    "estimate_tokens",
    "extract_breaking_changes",
    "filter_by_token_limit",
    "has_breaking_markers",
    "merge_breaking_changes",
    "normalize_change_key",
    "split_unified_diff",
    "summarize_breaking_changes",
]
