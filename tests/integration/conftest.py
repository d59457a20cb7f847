"""Fixtures serving canned registry and GitHub responses through httpx.MockTransport."""

import io
import tarfile
from typing import Any

import httpx
import pytest

from renovate_safety.utils.http import AsyncHttpClient

EXPRESS_TARBALL_URL = "https://registry.npmjs.org/express/-/express-{version}.tgz"

EXPRESS_README = (
    "Fast, unopinionated, minimalist web framework.\n"
    "\n"
    "## Changelog\n"
    "\n"
    "### 5.0.0\n"
    "\n"
    "- Removed `res.redirect('back')` magic string\n"
    "\n"
    "### 4.18.2\n"
    "\n"
    "- deps: body-parser@1.20.1\n"
)


def make_tarball(files: dict[str, str]) -> bytes:
    """Build an npm-style tarball with every file under ``package/``."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for path, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(f"package/{path}")
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class RegistryStub:
    """Routes requests by scheme, host and path to canned responses.

    Unknown URLs answer 404. Query strings are ignored, so paginated
    listings return the same page every time.
    """

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, Any]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, payload: Any, status: int = 200) -> None:
        self.routes[url] = (status, payload)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        if key not in self.routes:
            return httpx.Response(404, json={"message": "Not Found"})
        status, payload = self.routes[key]
        if isinstance(payload, bytes):
            return httpx.Response(status, content=payload)
        return httpx.Response(status, json=payload)

    def requested(self, url: str) -> int:
        """Number of requests made to a URL."""
        return sum(1 for r in self.requests if f"{r.url.scheme}://{r.url.host}{r.url.path}" == url)

    def http(self, service: str) -> AsyncHttpClient:
        transport = httpx.MockTransport(self.handler)
        return AsyncHttpClient(service, client=httpx.AsyncClient(transport=transport))


@pytest.fixture
def stub() -> RegistryStub:
    """An empty registry stub."""
    return RegistryStub()


def express_packument() -> dict[str, Any]:
    """Packument for express with 4.18.2 and 5.0.0 published."""
    return {
        "name": "express",
        "readme": EXPRESS_README,
        "repository": {"type": "git", "url": "git+https://github.com/expressjs/express.git"},
        "time": {"4.18.2": "2022-10-08T20:05:00.000Z", "5.0.0": "2024-09-10T04:30:00.000Z"},
        "versions": {
            "4.18.2": {
                "name": "express",
                "version": "4.18.2",
                "description": "Fast, unopinionated, minimalist web framework",
                "license": "MIT",
                "engines": {"node": ">= 0.10.0"},
                "dist": {"tarball": EXPRESS_TARBALL_URL.format(version="4.18.2")},
            },
            "5.0.0": {
                "name": "express",
                "version": "5.0.0",
                "description": "Fast, unopinionated, minimalist web framework",
                "license": "MIT",
                "main": "./index.js",
                "engines": {"node": ">= 18"},
                "dist": {"tarball": EXPRESS_TARBALL_URL.format(version="5.0.0")},
            },
        },
    }


@pytest.fixture
def express_registry(stub: RegistryStub) -> RegistryStub:
    """Stub serving express metadata, tarballs, downloads and GitHub releases."""
    stub.add("https://registry.npmjs.org/express", express_packument())
    stub.add("https://api.npmjs.org/downloads/point/last-week/express", {"downloads": 31000000, "package": "express"})
    stub.add(
        EXPRESS_TARBALL_URL.format(version="4.18.2"),
        make_tarball(
            {
                "package.json": '{"name": "express", "engines": {"node": ">= 0.10.0"}}',
                "index.js": "export function del(path) {}\nexport function get(path, handler) {}\n",
            }
        ),
    )
    stub.add(
        EXPRESS_TARBALL_URL.format(version="5.0.0"),
        make_tarball(
            {
                "package.json": '{"name": "express", "engines": {"node": ">= 18"}}',
                "index.js": "export function get(path, handler) {}\n",
            }
        ),
    )
    stub.add(
        "https://api.github.com/repos/expressjs/express/releases",
        [
            {
                "tag_name": "v5.0.0",
                "draft": False,
                "body": "## Breaking Changes\n\n- `app.del()` removed, use `app.delete()`\n- Drop support for Node.js before 18",
            },
            {"tag_name": "4.18.2", "draft": False, "body": "- Fix regression routing"},
        ],
    )
    return stub


@pytest.fixture
def tarball():
    """Factory building in-memory package tarballs."""
    return make_tarball
