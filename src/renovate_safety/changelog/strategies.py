"""Changelog acquisition strategies.

Each strategy fetches changelog evidence for a version range from one kind
of source and reports the outcome as a ``StrategyOutcome``: a changelog, a
clean "nothing here", or a failure reason. Strategies never raise for
source problems.
"""

import re
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from typing import ClassVar

from renovate_safety.changelog.sections import (
    extract_changelog_section,
    extract_version_range,
    has_version_headers,
)
from renovate_safety.core.models import ChangelogDiff, ChangelogSource, PackageUpdate
from renovate_safety.extraction.lexicon import COMMIT_BREAKING_PATTERNS
from renovate_safety.registry.base import FetchResult, RegistryProvider
from renovate_safety.registry.github import GitHubReleasesClient
from renovate_safety.utils.logging import get_logger
from renovate_safety.utils.versions import parse_version, strip_tag_prefix, tag_candidates, version_in_range

logger = get_logger(__name__)

# Trust placed in each kind of evidence
SOURCE_CONFIDENCE: dict[ChangelogSource, float] = {
    ChangelogSource.RELEASE_NOTES: 0.90,
    ChangelogSource.COMBINED: 0.85,
    ChangelogSource.REGISTRY_DIFF: 0.80,
    ChangelogSource.REGISTRY_DESCRIPTION: 0.70,
    ChangelogSource.COMMIT_LOG: 0.60,
}

RELEASE_SEPARATOR = "\n\n---\n\n"

# Conventional-commit types, in the order groups are listed
COMMIT_TYPE_ORDER = ("feat", "fix", "refactor", "perf", "build", "deps", "chore", "docs", "other")
_CONVENTIONAL_SUBJECT = re.compile(r"^(?P<type>[a-z]+)(?:\([^)]*\))?!?:\s*(?P<subject>.+)$", re.IGNORECASE)
_BREAKING_FOOTER = re.compile(r"^BREAKING[ -]CHANGES?:\s*(?P<text>.+)$", re.MULTILINE)


@dataclass(frozen=True)
class StrategyOutcome:
    """Result of running one strategy."""

    strategy: str
    changelog: ChangelogDiff | None = None
    reason: str | None = None
    failed: bool = False

    @property
    def found(self) -> bool:
        return self.changelog is not None

    @classmethod
    def success(cls, strategy: str, changelog: ChangelogDiff) -> "StrategyOutcome":
        return cls(strategy=strategy, changelog=changelog)

    @classmethod
    def empty(cls, strategy: str, reason: str) -> "StrategyOutcome":
        return cls(strategy=strategy, reason=reason)

    @classmethod
    def failure(cls, strategy: str, reason: str) -> "StrategyOutcome":
        return cls(strategy=strategy, reason=reason, failed=True)

    @classmethod
    def from_fetch(cls, strategy: str, result: FetchResult[object]) -> "StrategyOutcome":
        """Outcome for a failed ``FetchResult``: empty if the data was missing."""
        reason = result.error or "no data"
        return cls.empty(strategy, reason) if result.missing else cls.failure(strategy, reason)


@dataclass
class AcquisitionContext:
    """Everything a strategy needs to look up evidence for one update."""

    update: PackageUpdate
    registry: RegistryProvider
    github: GitHubReleasesClient | None = None
    repository: tuple[str, str] | None = None


class ChangelogStrategy(ABC):
    """One way of acquiring changelog evidence."""

    name: ClassVar[str]
    source: ClassVar[ChangelogSource]

    @property
    def confidence(self) -> float:
        return SOURCE_CONFIDENCE[self.source]

    def _diff(self, update: PackageUpdate, content: str) -> ChangelogDiff:
        return ChangelogDiff(
            content=content,
            source=self.source,
            from_version=update.from_version,
            to_version=update.to_version,
        )

    @abstractmethod
    async def acquire(self, context: AcquisitionContext) -> StrategyOutcome:
        """Acquire evidence for the update in ``context``."""


def _commit_type(subject: str) -> str:
    match = _CONVENTIONAL_SUBJECT.match(subject)
    if not match:
        return "other"
    kind = match.group("type").lower()
    return kind if kind in COMMIT_TYPE_ORDER else "other"


def summarize_commits(messages: list[str], from_tag: str, to_tag: str) -> str:
    """Render breaking commits as a changelog grouped by conventional-commit type."""
    groups: dict[str, list[str]] = defaultdict(list)
    for message in messages:
        subject = message.strip().splitlines()[0].strip()
        footer = _BREAKING_FOOTER.search(message)
        entry = subject
        if footer and footer.group("text").strip() not in subject:
            entry += f" ({footer.group('text').strip()})"
        groups[_commit_type(subject)].append(entry)

    lines = [f"Commits between {from_tag} and {to_tag}: {len(messages)} flagged as breaking", "", "## Breaking Changes", ""]
    for kind in COMMIT_TYPE_ORDER:
        for entry in groups.get(kind, []):
            lines.append(f"- **{kind}**: {entry}")
    return "\n".join(lines)


class CommitLogStrategy(ChangelogStrategy):
    """Mines commit messages between the two release tags."""

    name = "commit-log"
    source = ChangelogSource.COMMIT_LOG

    @staticmethod
    def resolve_tag(tags: list[str], version: str, package_name: str) -> str | None:
        """Find the tag a version was released under.

        Tries the exact version, the ``v``-prefixed form, the zero-patch
        forms, the truncated ``major.minor`` form and finally monorepo
        ``name@version`` tags.
        """
        available = set(tags)
        for candidate in [*tag_candidates(version), f"{package_name}@{version}"]:
            if candidate in available:
                return candidate
        return None

    async def acquire(self, context: AcquisitionContext) -> StrategyOutcome:
        if context.github is None or context.repository is None:
            return StrategyOutcome.empty(self.name, "no GitHub repository known")

        owner, repo = context.repository
        update = context.update
        tags = await context.github.list_tags(owner, repo)
        if not tags.ok:
            return StrategyOutcome.from_fetch(self.name, tags)

        from_tag = self.resolve_tag(tags.value or [], update.from_version, update.name)
        to_tag = self.resolve_tag(tags.value or [], update.to_version, update.name)
        if from_tag is None or to_tag is None:
            return StrategyOutcome.empty(self.name, f"release tags for {update} not found in {owner}/{repo}")

        commits = await context.github.compare_commits(owner, repo, from_tag, to_tag)
        if not commits.ok:
            return StrategyOutcome.from_fetch(self.name, commits)

        breaking = [m for m in commits.value or [] if any(p.search(m) for p in COMMIT_BREAKING_PATTERNS)]
        if not breaking:
            return StrategyOutcome.empty(self.name, f"no breaking commits between {from_tag} and {to_tag}")

        logger.debug("Found %d breaking commits for %s", len(breaking), update)
        return StrategyOutcome.success(self.name, self._diff(update, summarize_commits(breaking, from_tag, to_tag)))


class RegistryDiffStrategy(ChangelogStrategy):
    """Diffs the two published archives."""

    name = "registry-diff"
    source = ChangelogSource.REGISTRY_DIFF

    async def acquire(self, context: AcquisitionContext) -> StrategyOutcome:
        update = context.update
        diff = await context.registry.fetch_diff(update.name, update.from_version, update.to_version)
        if not diff.ok:
            return StrategyOutcome.from_fetch(self.name, diff)
        return StrategyOutcome.success(self.name, self._diff(update, diff.value or ""))


class ReleaseNotesStrategy(ChangelogStrategy):
    """Collects hosted release notes for every release in ``(from, to]``."""

    name = "release-notes"
    source = ChangelogSource.RELEASE_NOTES

    @staticmethod
    def _release_version(tag: str, package_name: str) -> str | None:
        # Monorepo tags name the package: only our own count
        if "@" in tag.lstrip("@"):
            prefix = tag[: tag.rfind("@")]
            if prefix != package_name:
                return None
        version = strip_tag_prefix(tag)
        return version if re.match(r"\d", version) else None

    async def acquire(self, context: AcquisitionContext) -> StrategyOutcome:
        if context.github is None or context.repository is None:
            return StrategyOutcome.empty(self.name, "no GitHub repository known")

        owner, repo = context.repository
        update = context.update
        releases = await context.github.list_releases(owner, repo)
        if not releases.ok:
            return StrategyOutcome.from_fetch(self.name, releases)

        selected: list[tuple[str, str]] = []
        for release in releases.value or []:
            version = self._release_version(release.get("tag_name") or "", update.name)
            body = (release.get("body") or "").strip()
            if version is None or not body:
                continue
            if version_in_range(version, update.from_version, update.to_version):
                selected.append((version, body))

        if not selected:
            return StrategyOutcome.empty(self.name, f"no release notes for {update} in {owner}/{repo}")

        selected.sort(key=lambda item: parse_version(item[0]))
        content = RELEASE_SEPARATOR.join(f"## {version}\n\n{body}" for version, body in selected)
        return StrategyOutcome.success(self.name, self._diff(update, content))


class RegistryDescriptionStrategy(ChangelogStrategy):
    """Uses the changelog embedded in the registry README or long description."""

    name = "registry-description"
    source = ChangelogSource.REGISTRY_DESCRIPTION

    async def acquire(self, context: AcquisitionContext) -> StrategyOutcome:
        update = context.update
        description = await context.registry.fetch_readme_or_description(update.name, update.to_version)
        if not description.ok:
            return StrategyOutcome.from_fetch(self.name, description)

        text = description.value or ""
        section = extract_changelog_section(text)
        if section is None:
            # A README with no changelog and no version headers is not release evidence
            if not has_version_headers(text):
                return StrategyOutcome.empty(self.name, f"description of {update.name} has no changelog")
            section = text
        content = extract_version_range(section, update.from_version, update.to_version)
        if not content.strip():
            return StrategyOutcome.empty(self.name, f"description has no entries for {update}")
        return StrategyOutcome.success(self.name, self._diff(update, content))


# Declared order; the chain evaluates them by descending confidence
DEFAULT_STRATEGIES: tuple[type[ChangelogStrategy], ...] = (
    CommitLogStrategy,
    RegistryDiffStrategy,
    ReleaseNotesStrategy,
    RegistryDescriptionStrategy,
)
