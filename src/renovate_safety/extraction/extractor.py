"""Entry point tying text and diff extraction to acquired changelog evidence."""

from collections.abc import Iterable

from renovate_safety.core.models import (
    BreakingChange,
    ChangelogDiff,
    ChangelogSource,
    Ecosystem,
    PackageUpdate,
)
from renovate_safety.extraction.diff import DiffAnalyzer, split_unified_diff
from renovate_safety.extraction.text import BreakingChangeExtractor


def extract_breaking_changes(
    update: PackageUpdate,
    changelog: ChangelogDiff | None,
    ecosystem: Ecosystem,
    entry_hints: Iterable[str] = (),
    runtime_before: str | None = None,
    runtime_after: str | None = None,
) -> list[BreakingChange]:
    """Extract breaking changes from whatever evidence the chain produced.

    Registry diffs go through the diff analyzer; every other source is
    treated as prose and goes through the lexicon extractor.

    Args:
        update: The version bump under analysis.
        changelog: Winning changelog evidence, if any.
        ecosystem: Ecosystem of the package.
        entry_hints: Public entry files of the package, for diff analysis.
        runtime_before: Runtime requirement of the old version.
        runtime_after: Runtime requirement of the new version.

    Returns:
        Deduplicated, sorted breaking changes.
    """
    if changelog is None or not changelog.content.strip():
        return []

    if changelog.source == ChangelogSource.REGISTRY_DIFF:
        return DiffAnalyzer(ecosystem).analyze(
            split_unified_diff(changelog.content),
            update,
            entry_hints=entry_hints,
            runtime_before=runtime_before,
            runtime_after=runtime_after,
        )

    return BreakingChangeExtractor().extract(changelog.content, changelog.source.value)
