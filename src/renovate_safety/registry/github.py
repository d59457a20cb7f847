"""GitHub REST client for release notes, tags and commit comparisons."""

import re
from typing import Any, ClassVar
from urllib.parse import quote

from renovate_safety.errors import MalformedInputError
from renovate_safety.registry.base import FetchResult, HttpProvider, capture
from renovate_safety.utils.http import AsyncHttpClient, create_github_rate_limiter
from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)

GITHUB_API_URL = "https://api.github.com"
PER_PAGE = 100
DEFAULT_MAX_PAGES = 10

_GITHUB_REPOSITORY = re.compile(
    r"(?:github\.com[/:]|^github:)(?P<owner>[A-Za-z0-9_.-]+)/(?P<repo>[A-Za-z0-9_.-]+?)(?:\.git)?(?:[/#?].*)?$"
)
_SHORTHAND = re.compile(r"^(?P<owner>[A-Za-z0-9_.-]+)/(?P<repo>[A-Za-z0-9_.-]+)$")


def parse_github_repository(url: str | None) -> tuple[str, str] | None:
    """Extract ``(owner, repo)`` from a repository reference.

    Understands ``https://github.com/o/r``, ``git+https://github.com/o/r.git``,
    ``git@github.com:o/r.git``, ``github:o/r`` and npm's bare ``o/r``
    shorthand.
    """
    if not url:
        return None
    url = url.strip()
    match = _GITHUB_REPOSITORY.search(url) or _SHORTHAND.match(url)
    if not match:
        return None
    return match.group("owner"), match.group("repo")


class GitHubReleasesClient(HttpProvider):
    """Reads releases, tags and commit ranges of a GitHub repository."""

    service_name: ClassVar[str] = "GitHub"

    def __init__(
        self,
        token: str | None = None,
        http: AsyncHttpClient | None = None,
        timeout: float = 30.0,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> None:
        """Initialize the client.

        Args:
            token: Optional GitHub token; raises the rate limit from 60 to 5000 requests/hour.
            http: Optional pre-built client (not closed on exit).
            timeout: Request timeout in seconds.
            max_pages: Upper bound on pages fetched for paginated listings.
        """
        super().__init__(http=http, timeout=timeout)
        self.token = token
        self.max_pages = max_pages

    def _create_http(self) -> AsyncHttpClient:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return AsyncHttpClient(
            self.service_name,
            timeout=self.timeout,
            rate_limiter=create_github_rate_limiter(authenticated=bool(self.token)),
            headers=headers,
        )

    async def _paginate(self, path: str) -> list[Any]:
        items: list[Any] = []
        for page in range(1, self.max_pages + 1):
            data = await self.http.get_json(
                f"{GITHUB_API_URL}{path}",
                params={"per_page": PER_PAGE, "page": page},
                retry=True,
            )
            if not isinstance(data, list):
                raise MalformedInputError(f"Unexpected GitHub response for {path}")
            items.extend(data)
            if len(data) < PER_PAGE:
                break
        return items

    async def list_releases(self, owner: str, repo: str) -> FetchResult[list[dict[str, Any]]]:
        """List published releases, newest first as GitHub returns them."""

        async def load() -> list[dict[str, Any]]:
            releases = await self._paginate(f"/repos/{owner}/{repo}/releases")
            return [r for r in releases if isinstance(r, dict) and not r.get("draft")]

        return await capture(f"GitHub releases {owner}/{repo}", load())

    async def list_tags(self, owner: str, repo: str) -> FetchResult[list[str]]:
        """List tag names."""

        async def load() -> list[str]:
            tags = await self._paginate(f"/repos/{owner}/{repo}/tags")
            return [t["name"] for t in tags if isinstance(t, dict) and t.get("name")]

        return await capture(f"GitHub tags {owner}/{repo}", load())

    async def compare_commits(self, owner: str, repo: str, base: str, head: str) -> FetchResult[list[str]]:
        """Commit messages between two refs, oldest first.

        Args:
            owner: Repository owner.
            repo: Repository name.
            base: Base tag or ref.
            head: Head tag or ref.
        """

        async def load() -> list[str]:
            data = await self.http.get_json(
                f"{GITHUB_API_URL}/repos/{owner}/{repo}/compare/{quote(base, safe='')}...{quote(head, safe='')}",
                retry=True,
            )
            commits = data.get("commits") if isinstance(data, dict) else None
            if not isinstance(commits, list):
                raise MalformedInputError(f"Unexpected compare response for {owner}/{repo}")
            return [
                c["commit"]["message"]
                for c in commits
                if isinstance(c, dict) and isinstance(c.get("commit"), dict) and c["commit"].get("message")
            ]

        return await capture(f"GitHub compare {owner}/{repo} {base}...{head}", load())
