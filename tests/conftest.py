"""Pytest configuration and fixtures for renovate-safety tests."""

import json
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from renovate_safety.core.models import FileContext, PackageUpdate, UsageAnalysis, UsageLocation, UsageType


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_npm_project(temp_dir: Path) -> Path:
    """Create a small Express application with a test and a config file."""
    (temp_dir / "package.json").write_text(
        json.dumps(
            {
                "name": "sample-app",
                "version": "1.0.0",
                "main": "src/server.js",
                "dependencies": {"express": "^4.18.2", "lodash": "^4.17.21"},
                "devDependencies": {"jest": "^29.7.0"},
            },
            indent=2,
        )
    )
    (temp_dir / "src").mkdir()
    (temp_dir / "src" / "server.js").write_text(
        "const express = require('express');\n"
        "const app = express();\n"
        "app.listen(3000);\n"
    )
    (temp_dir / "src" / "routes").mkdir()
    (temp_dir / "src" / "routes" / "users.ts").write_text(
        "import { Router, Request } from 'express';\n"
        "\n"
        "export const router = Router();\n"
        "export function handle(req: Request) {\n"
        "  return req.body;\n"
        "}\n"
    )
    (temp_dir / "tests").mkdir()
    (temp_dir / "tests" / "server.test.js").write_text(
        "const express = require('express');\n"
        "test('boots', () => { expect(express).toBeDefined(); });\n"
    )
    node_modules = temp_dir / "node_modules" / "express"
    node_modules.mkdir(parents=True)
    (node_modules / "index.js").write_text("module.exports = require('express/lib/express');\n")
    return temp_dir


@pytest.fixture
def sample_python_project(temp_dir: Path) -> Path:
    """Create a small Python project depending on requests."""
    (temp_dir / "requirements.txt").write_text("requests==2.31.0\npyyaml>=6.0\n")
    package = temp_dir / "app"
    package.mkdir()
    (package / "__init__.py").write_text("")
    (package / "client.py").write_text(
        "import requests\n"
        "from requests.adapters import HTTPAdapter\n"
        "\n"
        "\n"
        "def fetch(url):\n"
        "    session = requests.Session()\n"
        "    session.mount('https://', HTTPAdapter(max_retries=3))\n"
        "    return session.get(url).json()\n"
    )
    (temp_dir / "tests").mkdir()
    (temp_dir / "tests" / "test_client.py").write_text(
        "import requests\n"
        "\n"
        "\n"
        "def test_session():\n"
        "    assert requests.Session() is not None\n"
    )
    return temp_dir


@pytest.fixture
def minor_update() -> PackageUpdate:
    """A minor-version update of a runtime package."""
    return PackageUpdate(name="express", from_version="4.18.2", to_version="4.19.0")


def _usage(
    production: int = 0,
    test: int = 0,
    config: int = 0,
    critical_paths: list[str] | None = None,
) -> UsageAnalysis:
    locations = []
    for index in range(production):
        locations.append(
            UsageLocation(
                file=f"src/module_{index}.js",
                line=1,
                column=0,
                type=UsageType.IMPORT,
                code="import x from 'express'",
                context=FileContext.PRODUCTION,
            )
        )
    for index in range(test):
        locations.append(
            UsageLocation(
                file=f"tests/module_{index}.test.js",
                line=1,
                column=0,
                type=UsageType.IMPORT,
                code="import x from 'express'",
                context=FileContext.TEST,
            )
        )
    return UsageAnalysis(
        locations=locations,
        total_usage_count=production + test + config,
        production_usage_count=production,
        test_usage_count=test,
        config_usage_count=config,
        critical_paths=critical_paths or [],
    )


@pytest.fixture
def make_usage() -> Callable[..., UsageAnalysis]:
    """Factory for usage analyses with given production, test and config counts."""
    return _usage
