"""Changelog acquisition.

- cache: one JSON file per package update
- sections: embedded-changelog and version-range extraction
- strategies: commit mining, registry diff, release notes, registry description
- chain: trust-ordered, short-circuiting evaluation of the strategies
"""

from renovate_safety.changelog.cache import ChangelogCache, cache_key
from renovate_safety.changelog.chain import AcquisitionResult, ChangelogChain
from renovate_safety.changelog.sections import extract_changelog_section, extract_version_range, has_version_headers
from renovate_safety.changelog.strategies import (
    SOURCE_CONFIDENCE,
    AcquisitionContext,
    ChangelogStrategy,
    CommitLogStrategy,
    RegistryDescriptionStrategy,
    RegistryDiffStrategy,
    ReleaseNotesStrategy,
    StrategyOutcome,
)

__all__ = [
    "SOURCE_CONFIDENCE",
    "AcquisitionContext",
    "AcquisitionResult",
    "ChangelogCache",
    "ChangelogChain",
    "ChangelogStrategy",
    "CommitLogStrategy",
    "RegistryDescriptionStrategy",
    "RegistryDiffStrategy",
    "ReleaseNotesStrategy",
    "StrategyOutcome",
    "cache_key",
    "extract_changelog_section",
    "extract_version_range",
    "has_version_headers",
]
