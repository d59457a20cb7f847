"""Registry and hosting providers.

Every lookup returns a ``FetchResult`` carrying either the value or the
reason it failed.
"""

from renovate_safety.registry.base import FetchResult, HttpProvider, RegistryProvider, capture
from renovate_safety.registry.github import GitHubReleasesClient, parse_github_repository
from renovate_safety.registry.npm import NpmRegistryClient
from renovate_safety.registry.pypi import PyPIClient

__all__ = [
    "FetchResult",
    "GitHubReleasesClient",
    "HttpProvider",
    "NpmRegistryClient",
    "PyPIClient",
    "RegistryProvider",
    "capture",
    "parse_github_repository",
]
