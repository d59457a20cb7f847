"""GitHub pull request metadata provider."""

import asyncio
import os
from dataclasses import dataclass

from github import Auth, Github
from github.GithubException import (
    BadCredentialsException,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)

from renovate_safety.config import GitHubConfig
from renovate_safety.errors import (
    GitHubAuthenticationError,
    GitHubNotFoundError,
    MissingTokenError,
    RateLimitError,
    SourceUnavailableError,
)
from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com"


@dataclass
class PullRequestMetadata:
    """The parts of a pull request needed to find the package update."""

    title: str
    body: str
    base_ref: str
    head_ref: str


class GitHubPullRequestProvider:
    """Fetches pull request metadata through PyGithub."""

    def __init__(self, config: GitHubConfig | None = None) -> None:
        """Initialize the provider.

        Args:
            config: GitHub settings. The token falls back to GITHUB_TOKEN and GH_TOKEN.
        """
        self._config = config or GitHubConfig()
        self._token = self._config.token or os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")
        self._gh: Github | None = None

    def _get_client(self) -> Github:
        """Get or create the GitHub client."""
        if self._gh is None:
            kwargs = {}
            if self._config.api_url != DEFAULT_API_URL:
                kwargs["base_url"] = self._config.api_url
            if self._token:
                self._gh = Github(auth=Auth.Token(self._token), **kwargs)
            else:
                self._gh = Github(**kwargs)
        return self._gh

    def fetch_pull_request(self, repo_full_name: str, pr_number: int) -> PullRequestMetadata:
        """Fetch a pull request synchronously.

        Args:
            repo_full_name: Repository full name (``owner/repo``).
            pr_number: Pull request number.

        Returns:
            Title, body and branch names of the PR.

        Raises:
            GitHubNotFoundError: The repository or PR does not exist.
            GitHubAuthenticationError: The token was rejected.
            MissingTokenError: GitHub requires authentication and no token is set.
            RateLimitError: The API rate limit is exhausted.
            SourceUnavailableError: Any other GitHub API failure.
        """
        try:
            repo = self._get_client().get_repo(repo_full_name)
            pr = repo.get_pull(pr_number)
            return PullRequestMetadata(
                title=pr.title or "",
                body=pr.body or "",
                base_ref=pr.base.ref,
                head_ref=pr.head.ref,
            )
        except UnknownObjectException as e:
            hint = "" if self._token else "Private repositories need GITHUB_TOKEN to be set."
            raise GitHubNotFoundError(repo=repo_full_name, pr_number=pr_number, hint=hint) from e
        except BadCredentialsException as e:
            raise GitHubAuthenticationError() from e
        except RateLimitExceededException as e:
            raise RateLimitError("GitHub") from e
        except GithubException as e:
            if e.status == 401 and not self._token:
                raise MissingTokenError("GITHUB_TOKEN") from e
            raise SourceUnavailableError("GitHub", e) from e

    async def get_pull_request(self, repo_full_name: str, pr_number: int) -> PullRequestMetadata:
        """Fetch a pull request without blocking the event loop."""
        logger.debug("Fetching PR #%d from %s", pr_number, repo_full_name)
        return await asyncio.to_thread(self.fetch_pull_request, repo_full_name, pr_number)
