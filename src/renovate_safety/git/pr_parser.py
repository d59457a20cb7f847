"""Package update extraction from Renovate and Dependabot pull requests.

Precedence when several patterns match:

1. Update tables in the body (``| [pkg](url) | `A` -> `B` |``). Every row
   is returned, runtime packages before ``@types/*`` rows.
2. Title patterns. Titles naming both versions win outright; titles naming
   only the target version take the installed version from the body.
3. The ``renovate/<name>-<version>`` branch name, with both versions taken
   from the body.
"""

import re

from renovate_safety.core.models import PackageUpdate
from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)

_VERSION = r"[~^=<>v]*\d[\w.+-]*"

# Update table rows: the versions either sit inside a markdown link or directly in backticks
TABLE_ROW_PATTERNS = [
    re.compile(
        r"^\|\s*\[(?P<name>[^\]]+)\][^|]*\|\s*\[`(?P<from>[^`]+)`\s*(?:->|→)\s*`(?P<to>[^`]+)`\][^|]*\|",
        re.MULTILINE,
    ),
    re.compile(
        r"^\|\s*\[?(?P<name>[^|\[\]()\s]+)\]?[^|\n]*\|(?:[^|`\n]*\|)*?[^|`\n]*"
        r"`(?P<from>[^`]+)`\s*(?:->|→)\s*`(?P<to>[^`]+)`",
        re.MULTILINE,
    ),
]

TABLE_HEADER_NAMES = {"package", "dependency", "name"}

# Titles naming both versions: "Update X from A to B", "Bump X from A to B", "chore(deps): bump X from A to B in /"
FROM_TO_TITLE_PATTERNS = [
    re.compile(
        rf"^(?:\[Security\]\s*)?(?:(?:chore|build|fix)\(deps(?:-dev)?\):\s*)?(?:bump|update)\s+(?:dependency\s+)?"
        rf"(?P<name>\S+)\s+from\s+(?P<from>{_VERSION})\s+to\s+(?P<to>{_VERSION})(?:\s+in\s+\S+)?\s*$",
        re.IGNORECASE,
    ),
]

# Titles naming only the target: "Update dependency X to vY", "chore(deps): update X to vY (major)"
TO_ONLY_TITLE_PATTERNS = [
    re.compile(
        rf"^(?:(?:chore|build|fix)\(deps(?:-dev)?\):\s*)?update\s+(?:dependency\s+)?"
        rf"(?P<name>\S+)\s+to\s+(?P<to>{_VERSION})(?:\s+\((?:major|minor|patch)\))?\s*$",
        re.IGNORECASE,
    ),
]

BRANCH_PATTERN = re.compile(r"^renovate/(?P<name>.+?)-v?(?P<version>\d[\w.]*)$")

_HTML_ENTITY = re.compile(r"&#\d+;")
_FULL_VERSION = re.compile(r"^\d+\.\d+\.\d+")


def normalize_version(version: str) -> str:
    """Strip range operators, ``v`` prefixes and formatting from a version."""
    version = version.strip().strip("`'\"").strip()
    version = re.sub(r"^(?:==|>=|~=|\^|~|=)", "", version)
    version = re.sub(r"^v(?=\d)", "", version)
    return version.rstrip(".,;")


def clean_body(body: str) -> str:
    """Remove HTML entities Renovate inserts to prevent auto-linking."""
    return _HTML_ENTITY.sub("", body or "")


def _make_update(name: str, from_version: str, to_version: str) -> PackageUpdate | None:
    name = name.strip().strip("`")
    from_version = normalize_version(from_version)
    to_version = normalize_version(to_version)
    if not name or not from_version or not to_version or from_version == to_version:
        return None
    return PackageUpdate(name=name, from_version=from_version, to_version=to_version)


class PullRequestParser:
    """Extracts package updates from a pull request's title, body and branch."""

    def parse_table(self, body: str) -> list[PackageUpdate]:
        """Parse every row of the update tables in a PR body.

        Returns:
            One update per package, runtime packages before ``@types/*``.
        """
        body = clean_body(body)
        updates: dict[str, PackageUpdate] = {}
        for pattern in TABLE_ROW_PATTERNS:
            for match in pattern.finditer(body):
                name = match.group("name").strip()
                if name.lower() in TABLE_HEADER_NAMES or name.startswith("-") or name in updates:
                    continue
                update = _make_update(name, match.group("from"), match.group("to"))
                if update is not None:
                    updates[name] = update
            if updates:
                break

        return sorted(updates.values(), key=lambda u: u.name.startswith("@types/"))

    def versions_from_body(self, body: str, package_name: str) -> tuple[str, str] | None:
        """Find the installed and target versions of a package in a PR body."""
        for update in self.parse_table(body):
            if update.name == package_name:
                return update.from_version, update.to_version

        sentence = re.search(
            rf"{re.escape(package_name)}\S*\s+from\s+`?(?P<from>{_VERSION})`?\s+to\s+`?(?P<to>{_VERSION})`?",
            clean_body(body),
            re.IGNORECASE,
        )
        if sentence:
            return normalize_version(sentence.group("from")), normalize_version(sentence.group("to"))
        return None

    def parse_title(self, title: str, body: str = "") -> PackageUpdate | None:
        """Parse a single update from a PR title, completing it from the body."""
        title = title.strip()
        for pattern in FROM_TO_TITLE_PATTERNS:
            match = pattern.match(title)
            if match:
                return _make_update(match.group("name"), match.group("from"), match.group("to"))

        for pattern in TO_ONLY_TITLE_PATTERNS:
            match = pattern.match(title)
            if not match:
                continue
            name = match.group("name")
            versions = self.versions_from_body(body, name)
            if versions is None:
                logger.debug("Title names %s but the body has no installed version", name)
                return None
            from_version, body_to = versions
            title_to = normalize_version(match.group("to"))
            # Titles often abbreviate the target ("to v2"); the body has the full version
            to_version = title_to if _FULL_VERSION.match(title_to) else body_to
            return _make_update(name, from_version, to_version)

        return None

    def parse_branch(self, branch: str, body: str = "") -> PackageUpdate | None:
        """Parse an update from a ``renovate/<name>-<version>`` branch and the body."""
        match = BRANCH_PATTERN.match(branch.strip())
        if not match:
            return None
        versions = self.versions_from_body(body, match.group("name"))
        if versions is None:
            return None
        return _make_update(match.group("name"), *versions)

    def parse(self, title: str, body: str = "", branch: str = "") -> list[PackageUpdate]:
        """Extract every package update a pull request describes.

        Args:
            title: PR title.
            body: PR description (Markdown).
            branch: Head branch name.

        Returns:
            Updates in precedence order; empty if nothing could be parsed.
        """
        table = self.parse_table(body)
        if table:
            return table

        from_title = self.parse_title(title, body)
        if from_title is not None:
            return [from_title]

        from_branch = self.parse_branch(branch, body) if branch else None
        if from_branch is not None:
            return [from_branch]

        logger.debug("No package update found in PR %r", title)
        return []


def parse_pull_request(title: str, body: str = "", branch: str = "") -> list[PackageUpdate]:
    """Convenience function to parse a dependency update PR.

    Args:
        title: PR title.
        body: PR description.
        branch: Head branch name.

    Returns:
        Parsed updates, runtime packages first.
    """
    return PullRequestParser().parse(title, body, branch)
