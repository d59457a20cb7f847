"""PyPI JSON API client."""

import re
from datetime import datetime
from typing import Any, ClassVar
from urllib.parse import quote

from renovate_safety.core.models import Ecosystem, PackageMetadata
from renovate_safety.errors import MalformedInputError, NotFoundError
from renovate_safety.registry.archive import MAX_ARCHIVE_BYTES, diff_archives, read_archive
from renovate_safety.registry.base import FetchResult, RegistryProvider, capture
from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)

PYPI_URL = "https://pypi.org/pypi"

# project_urls keys that usually point at the source repository, in preference order
REPOSITORY_URL_KEYS = ("source", "source code", "repository", "code", "github", "homepage")

# Archive kinds in preference order for diffing
ARCHIVE_KINDS = ("sdist", "bdist_wheel")


def _parse_time(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def repository_from_project_urls(info: dict[str, Any]) -> str | None:
    """Pick the source repository URL out of a PyPI ``info`` block."""
    project_urls = info.get("project_urls") or {}
    by_key = {str(k).lower(): v for k, v in project_urls.items() if isinstance(v, str)}
    for key in REPOSITORY_URL_KEYS:
        url = by_key.get(key)
        if url and re.search(r"github\.com|gitlab\.com|bitbucket\.org", url):
            return url
    for url in by_key.values():
        if "github.com" in url:
            return url
    home_page = info.get("home_page")
    if isinstance(home_page, str) and "github.com" in home_page:
        return home_page
    return None


class PyPIClient(RegistryProvider):
    """Client for the PyPI JSON API.

    Release documents (``/pypi/<name>/<version>/json``) are cached per
    client so metadata, description, context and diff lookups share one
    request per version.
    """

    ecosystem: ClassVar[Ecosystem] = Ecosystem.PYPI
    service_name: ClassVar[str] = "PyPI"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._releases: dict[tuple[str, str], dict[str, Any]] = {}

    async def _release(self, name: str, version: str) -> dict[str, Any]:
        key = (name, version)
        if key not in self._releases:
            try:
                data = await self.http.get_json(
                    f"{PYPI_URL}/{quote(name)}/{quote(version)}/json", retry=True
                )
            except NotFoundError as e:
                raise NotFoundError(f"{name} {version} is not published on PyPI") from e
            if not isinstance(data, dict) or not isinstance(data.get("info"), dict):
                raise MalformedInputError(f"Unexpected PyPI response for {name} {version}")
            self._releases[key] = data
        return self._releases[key]

    async def fetch_release(self, name: str, version: str) -> FetchResult[dict[str, Any]]:
        """Fetch the raw release document of one version."""
        return await capture(f"PyPI release {name} {version}", self._release(name, version))

    async def fetch_metadata(self, name: str, version: str) -> FetchResult[PackageMetadata]:
        """Fetch metadata for one published version.

        Args:
            name: Distribution name.
            version: Exact published version.

        Returns:
            Parsed metadata or the reason it could not be fetched.
        """

        async def load() -> PackageMetadata:
            release = await self._release(name, version)
            info = release["info"]
            files = release.get("urls") or []
            published = _parse_time(files[0].get("upload_time_iso_8601")) if files else None
            yanked_reason = info.get("yanked_reason") if info.get("yanked") else None
            return PackageMetadata(
                name=info.get("name") or name,
                version=info.get("version") or version,
                description=info.get("summary"),
                homepage=info.get("home_page") or (info.get("project_urls") or {}).get("Homepage"),
                repository=repository_from_project_urls(info),
                license=info.get("license") or None,
                published_at=published,
                deprecated=f"Release yanked: {yanked_reason or 'no reason given'}" if info.get("yanked") else None,
                requires_runtime=info.get("requires_python") or None,
            )

        return await capture(f"PyPI metadata {name} {version}", load())

    async def fetch_readme_or_description(self, name: str, version: str) -> FetchResult[str]:
        """Fetch the long description of a release."""

        async def load() -> str:
            release = await self._release(name, version)
            description = release["info"].get("description")
            if not description or not str(description).strip() or str(description).strip() == "UNKNOWN":
                raise NotFoundError(f"{name} {version} has no long description")
            return str(description)

        return await capture(f"PyPI description {name} {version}", load())

    @staticmethod
    def _archive_url(release: dict[str, Any], kind: str) -> tuple[str, str] | None:
        for file_info in release.get("urls") or []:
            if file_info.get("packagetype") == kind and file_info.get("url"):
                return file_info["url"], file_info.get("filename") or file_info["url"].rsplit("/", 1)[-1]
        return None

    async def _archives(self, name: str, from_version: str, to_version: str) -> tuple[dict[str, str], dict[str, str]]:
        old_release = await self._release(name, from_version)
        new_release = await self._release(name, to_version)

        # Both sides must be the same kind of archive for the diff to mean anything
        for kind in ARCHIVE_KINDS:
            old_url = self._archive_url(old_release, kind)
            new_url = self._archive_url(new_release, kind)
            if old_url and new_url:
                old = read_archive(await self.http.get_bytes(old_url[0], MAX_ARCHIVE_BYTES), old_url[1])
                new = read_archive(await self.http.get_bytes(new_url[0], MAX_ARCHIVE_BYTES), new_url[1])
                return old, new
        raise NotFoundError(f"No comparable archives published for {name} {from_version} and {to_version}")

    async def fetch_diff(self, name: str, from_version: str, to_version: str) -> FetchResult[str]:
        """Diff the sdists (or wheels) of two versions.

        Returns:
            Unified diff with a statistics header, or a failure.
        """

        async def load() -> str:
            old, new = await self._archives(name, from_version, to_version)
            diff = diff_archives(old, new)
            if not diff.content:
                raise NotFoundError(f"No file differences between {from_version} and {to_version}")
            return diff.render(f"PyPI diff {name} {from_version} -> {to_version}")

        return await capture(f"PyPI diff {name}", load())
