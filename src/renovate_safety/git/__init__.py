"""Pull request access and parsing."""

from renovate_safety.git.github_client import GitHubPullRequestProvider, PullRequestMetadata
from renovate_safety.git.pr_parser import PullRequestParser, normalize_version, parse_pull_request

__all__ = [
    "GitHubPullRequestProvider",
    "PullRequestMetadata",
    "PullRequestParser",
    "normalize_version",
    "parse_pull_request",
]
