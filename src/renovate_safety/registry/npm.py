"""npm registry client."""

from datetime import datetime
from typing import Any, ClassVar
from urllib.parse import quote

from renovate_safety.core.models import Ecosystem, PackageMetadata
from renovate_safety.errors import MalformedInputError, NotFoundError
from renovate_safety.registry.archive import MAX_ARCHIVE_BYTES, diff_archives, read_archive
from renovate_safety.registry.base import FetchResult, RegistryProvider, capture
from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)

NPM_REGISTRY_URL = "https://registry.npmjs.org"
NPM_DOWNLOADS_URL = "https://api.npmjs.org/downloads/point/last-week"

ENTRY_FIELDS = ("main", "module", "types", "typings", "browser")


def _encode_name(name: str) -> str:
    # Scoped names keep their @ but the slash must be escaped
    return quote(name, safe="@")


def _repository_url(manifest: dict[str, Any]) -> str | None:
    repository = manifest.get("repository")
    if isinstance(repository, dict):
        return repository.get("url") or None
    if isinstance(repository, str):
        return repository or None
    return None


def _license(manifest: dict[str, Any]) -> str | None:
    value = manifest.get("license")
    if isinstance(value, dict):
        return value.get("type")
    return value if isinstance(value, str) else None


def _flatten_exports(exports: Any) -> list[str]:
    """Collect every file path referenced from an ``exports`` field."""
    if isinstance(exports, str):
        return [exports]
    paths: list[str] = []
    if isinstance(exports, dict):
        for value in exports.values():
            paths.extend(_flatten_exports(value))
    elif isinstance(exports, list):
        for value in exports:
            paths.extend(_flatten_exports(value))
    return paths


def entry_points_of(manifest: dict[str, Any]) -> list[str]:
    """Public entry files a version manifest declares."""
    entries = [manifest[f] for f in ENTRY_FIELDS if isinstance(manifest.get(f), str)]
    entries.extend(_flatten_exports(manifest.get("exports")))
    seen: set[str] = set()
    ordered: list[str] = []
    for entry in entries:
        entry = entry.removeprefix("./")
        if entry and entry not in seen and "*" not in entry:
            seen.add(entry)
            ordered.append(entry)
    return ordered


def _parse_time(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class NpmRegistryClient(RegistryProvider):
    """Client for the public npm registry.

    Packuments (full package documents) are fetched once per package and
    reused for every version lookup made through the same client.
    """

    ecosystem: ClassVar[Ecosystem] = Ecosystem.NPM
    service_name: ClassVar[str] = "npm registry"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._packuments: dict[str, dict[str, Any]] = {}

    async def _packument(self, name: str) -> dict[str, Any]:
        if name not in self._packuments:
            data = await self.http.get_json(
                f"{NPM_REGISTRY_URL}/{_encode_name(name)}",
                headers={"Accept": "application/json"},
                retry=True,
            )
            if not isinstance(data, dict):
                raise MalformedInputError(f"Unexpected packument for {name}")
            self._packuments[name] = data
        return self._packuments[name]

    async def _manifest(self, name: str, version: str) -> dict[str, Any]:
        packument = await self._packument(name)
        versions = packument.get("versions") or {}
        manifest = versions.get(version)
        if not isinstance(manifest, dict):
            raise NotFoundError(f"Version {version} of {name} is not published on npm")
        return manifest

    async def fetch_version_manifest(self, name: str, version: str) -> FetchResult[dict[str, Any]]:
        """Fetch the ``package.json`` of one published version."""
        return await capture(f"npm manifest {name}@{version}", self._manifest(name, version))

    async def fetch_metadata(self, name: str, version: str) -> FetchResult[PackageMetadata]:
        """Fetch metadata for one published version.

        Args:
            name: Package name.
            version: Exact published version.

        Returns:
            Parsed metadata or the reason it could not be fetched.
        """

        async def load() -> PackageMetadata:
            packument = await self._packument(name)
            manifest = await self._manifest(name, version)
            engines = manifest.get("engines") if isinstance(manifest.get("engines"), dict) else {}
            deprecated = manifest.get("deprecated")
            return PackageMetadata(
                name=name,
                version=version,
                description=manifest.get("description"),
                homepage=manifest.get("homepage"),
                repository=_repository_url(manifest) or _repository_url(packument),
                license=_license(manifest),
                published_at=_parse_time((packument.get("time") or {}).get(version)),
                deprecated=deprecated if isinstance(deprecated, str) and deprecated else None,
                requires_runtime=engines.get("node"),
                entry_points=entry_points_of(manifest),
            )

        return await capture(f"npm metadata {name}@{version}", load())

    async def fetch_readme_or_description(self, name: str, version: str) -> FetchResult[str]:
        """Fetch the package README, falling back to the manifest description."""

        async def load() -> str:
            packument = await self._packument(name)
            manifest = (packument.get("versions") or {}).get(version) or {}
            text = manifest.get("readme") or packument.get("readme") or manifest.get("description")
            if not text or not str(text).strip():
                raise NotFoundError(f"{name} has no README or description")
            return str(text)

        return await capture(f"npm readme {name}@{version}", load())

    async def fetch_weekly_downloads(self, name: str) -> FetchResult[int]:
        """Fetch last week's download count."""

        async def load() -> int:
            data = await self.http.get_json(f"{NPM_DOWNLOADS_URL}/{_encode_name(name)}", retry=True)
            downloads = data.get("downloads") if isinstance(data, dict) else None
            if not isinstance(downloads, int):
                raise MalformedInputError(f"No download count for {name}")
            return downloads

        return await capture(f"npm downloads {name}", load())

    async def _tarball(self, name: str, version: str) -> dict[str, str]:
        manifest = await self._manifest(name, version)
        url = (manifest.get("dist") or {}).get("tarball")
        if not url:
            raise NotFoundError(f"No tarball published for {name}@{version}")
        data = await self.http.get_bytes(url, MAX_ARCHIVE_BYTES)
        return read_archive(data, url.rsplit("/", 1)[-1])

    async def fetch_diff(self, name: str, from_version: str, to_version: str) -> FetchResult[str]:
        """Diff the published tarballs of two versions.

        Returns:
            Unified diff with a statistics header, or a failure when either
            tarball is unavailable or the versions are identical.
        """

        async def load() -> str:
            old = await self._tarball(name, from_version)
            new = await self._tarball(name, to_version)
            diff = diff_archives(old, new)
            if not diff.content:
                raise NotFoundError(f"No file differences between {from_version} and {to_version}")
            return diff.render(f"npm diff {name} {from_version} -> {to_version}")

        return await capture(f"npm diff {name}", load())
