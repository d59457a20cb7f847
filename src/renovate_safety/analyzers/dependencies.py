"""How a project declares its dependencies.

Reads manifests (package.json, requirements files, pyproject.toml, Pipfile)
for direct declarations and lockfiles for everything installed. A package
found only in a lockfile is transitive.
"""

import json
import re
from pathlib import Path
from typing import Any

import toml
import yaml

from renovate_safety.core.models import DependencyType
from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)

NPM_DEPENDENCY_FIELDS: dict[str, DependencyType] = {
    "dependencies": DependencyType.PRODUCTION,
    "peerDependencies": DependencyType.PEER,
    "optionalDependencies": DependencyType.OPTIONAL,
    "devDependencies": DependencyType.DEVELOPMENT,
}

NPM_LOCKFILES = ("package-lock.json", "npm-shrinkwrap.json", "yarn.lock", "pnpm-lock.yaml")
PYTHON_LOCKFILES = ("poetry.lock", "Pipfile.lock", "uv.lock")

# Requirement files and extras groups whose names mark development tooling
DEV_NAME_HINTS = ("dev", "test", "lint", "doc", "typing")

# Strongest declaration wins when a package is declared more than once
_PRECEDENCE = (
    DependencyType.PRODUCTION,
    DependencyType.PEER,
    DependencyType.OPTIONAL,
    DependencyType.DEVELOPMENT,
    DependencyType.TRANSITIVE,
)

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


def canonical_name(name: str) -> str:
    """PEP 503 normalized distribution name."""
    return re.sub(r"[-_.]+", "-", name).lower()


def strongest(types: list[DependencyType]) -> DependencyType | None:
    """Pick the declaration that matters most for risk, or None for no declarations."""
    if not types:
        return None
    return min(types, key=_PRECEDENCE.index)


def _is_dev_name(name: str) -> bool:
    lowered = name.lower()
    return any(hint in lowered for hint in DEV_NAME_HINTS)


def _load(path: Path, loader: Any) -> Any:
    try:
        return loader(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError, toml.TomlDecodeError, yaml.YAMLError) as e:
        logger.debug("Could not parse %s: %s", path, e)
        return None


# npm


def npm_package_from_path(pkg_path: str) -> str | None:
    """Package name of a lockfile path like ``node_modules/a/node_modules/@s/b``."""
    parts = pkg_path.split("node_modules/")
    if len(parts) < 2:
        return None
    name = parts[-1]
    if "/" in name and not name.startswith("@"):
        name = name.split("/")[0]
    return name or None


def _package_lock_names(data: dict[str, Any]) -> set[str]:
    names: set[str] = set()
    for pkg_path in data.get("packages") or {}:
        name = npm_package_from_path(pkg_path)
        if name:
            names.add(name)

    # lockfileVersion 1 nests dependencies instead of listing paths
    pending = [data.get("dependencies") or {}]
    while pending:
        level = pending.pop()
        for name, info in level.items():
            names.add(name)
            if isinstance(info, dict) and isinstance(info.get("dependencies"), dict):
                pending.append(info["dependencies"])
    return names


def _yarn_lock_names(content: str) -> set[str]:
    names: set[str] = set()
    for line in content.splitlines():
        if not line or line.startswith((" ", "\t", "#")):
            continue
        for spec in line.rstrip(":").split(","):
            spec = spec.strip().strip('"')
            at = spec.rfind("@")
            if at > 0:
                names.add(spec[:at])
    return names


def _pnpm_lock_names(data: dict[str, Any]) -> set[str]:
    names: set[str] = set()
    packages = data.get("packages") or data.get("snapshots") or {}
    for pkg_path in packages:
        match = re.match(r"/?(@[^@/]+/[^@]+|[^@/][^@]*)@", str(pkg_path))
        if match:
            names.add(match.group(1))
    return names


def npm_locked_packages(project_path: Path) -> set[str]:
    """Every package any npm lockfile of the project installs."""
    names: set[str] = set()
    for filename in NPM_LOCKFILES:
        path = project_path / filename
        if not path.is_file():
            continue
        if filename == "yarn.lock":
            content = _load(path, str)
            if content:
                names |= _yarn_lock_names(content)
            continue
        data = _load(path, yaml.safe_load if filename.endswith(".yaml") else json.loads)
        if not isinstance(data, dict):
            continue
        names |= _pnpm_lock_names(data) if filename.endswith(".yaml") else _package_lock_names(data)
    return names


def npm_dependency_type(manifest: dict[str, Any], package_name: str, project_path: Path) -> DependencyType | None:
    """How an npm project declares a package.

    Args:
        manifest: Parsed package.json of the project.
        package_name: npm package name.
        project_path: Project root, searched for lockfiles.

    Returns:
        The dependency field naming the package, ``transitive`` for packages
        only a lockfile installs, or None when neither mentions it.
    """
    declared = [
        dependency_type
        for field, dependency_type in NPM_DEPENDENCY_FIELDS.items()
        if isinstance(manifest.get(field), dict) and package_name in manifest[field]
    ]
    if declared:
        return strongest(declared)
    if package_name in npm_locked_packages(project_path):
        return DependencyType.TRANSITIVE
    return None


# Python


def _requirement_names(lines: list[str]) -> set[str]:
    names: set[str] = set()
    for line in lines:
        line = line.split("#")[0].strip()
        if not line or line.startswith("-"):
            continue
        match = _REQUIREMENT_NAME.match(line)
        if match:
            names.add(canonical_name(match.group(1)))
    return names


def _requirement_files(project_path: Path) -> list[Path]:
    files = [
        *project_path.glob("requirements*.txt"),
        *project_path.glob("requirements*.in"),
        *project_path.glob("requirements/*.txt"),
        *project_path.glob("requirements/*.in"),
    ]
    return sorted(path for path in files if path.is_file())


def _pyproject_declarations(data: dict[str, Any]) -> dict[str, list[DependencyType]]:
    found: dict[str, list[DependencyType]] = {}

    def add(requirements: Any, dependency_type: DependencyType) -> None:
        if isinstance(requirements, dict):
            requirements = list(requirements)
        if not isinstance(requirements, list):
            return
        for name in _requirement_names([r for r in requirements if isinstance(r, str)]):
            found.setdefault(name, []).append(dependency_type)

    project = data.get("project") or {}
    add(project.get("dependencies"), DependencyType.PRODUCTION)
    for group, requirements in (project.get("optional-dependencies") or {}).items():
        add(requirements, DependencyType.DEVELOPMENT if _is_dev_name(group) else DependencyType.OPTIONAL)
    for requirements in (data.get("dependency-groups") or {}).values():
        add(requirements, DependencyType.DEVELOPMENT)

    poetry = (data.get("tool") or {}).get("poetry") or {}
    add(poetry.get("dependencies"), DependencyType.PRODUCTION)
    add(poetry.get("dev-dependencies"), DependencyType.DEVELOPMENT)
    for group, settings in (poetry.get("group") or {}).items():
        if isinstance(settings, dict):
            group_type = DependencyType.PRODUCTION if group == "main" else DependencyType.DEVELOPMENT
            add(settings.get("dependencies"), group_type)
    return found


def python_declarations(project_path: Path) -> dict[str, list[DependencyType]]:
    """Canonical distribution names declared by the project's Python manifests."""
    found: dict[str, list[DependencyType]] = {}

    for path in _requirement_files(project_path):
        content = _load(path, str)
        if not content:
            continue
        dependency_type = DependencyType.DEVELOPMENT if _is_dev_name(path.name) else DependencyType.PRODUCTION
        for name in _requirement_names(content.splitlines()):
            found.setdefault(name, []).append(dependency_type)

    pyproject = project_path / "pyproject.toml"
    if pyproject.is_file():
        data = _load(pyproject, toml.loads)
        if isinstance(data, dict):
            for name, types in _pyproject_declarations(data).items():
                found.setdefault(name, []).extend(types)

    pipfile = project_path / "Pipfile"
    if pipfile.is_file():
        data = _load(pipfile, toml.loads)
        if isinstance(data, dict):
            for section, dependency_type in (
                ("packages", DependencyType.PRODUCTION),
                ("dev-packages", DependencyType.DEVELOPMENT),
            ):
                for name in data.get(section) or {}:
                    found.setdefault(canonical_name(name), []).append(dependency_type)

    return found


def python_locked_packages(project_path: Path) -> set[str]:
    """Canonical names of every distribution a Python lockfile pins."""
    names: set[str] = set()
    for filename in PYTHON_LOCKFILES:
        path = project_path / filename
        if not path.is_file():
            continue
        if filename == "Pipfile.lock":
            data = _load(path, json.loads)
            if isinstance(data, dict):
                for section in ("default", "develop"):
                    names.update(canonical_name(name) for name in data.get(section) or {})
            continue
        data = _load(path, toml.loads)
        if isinstance(data, dict):
            for package in data.get("package") or []:
                if isinstance(package, dict) and package.get("name"):
                    names.add(canonical_name(package["name"]))
    return names


def python_dependency_type(distribution: str, project_path: Path) -> DependencyType | None:
    """How a Python project declares a distribution.

    Requirement files whose names mention dev, test, lint, doc or typing, and
    extras groups named the same way, count as development dependencies.
    """
    name = canonical_name(distribution)
    declared = python_declarations(project_path).get(name)
    if declared:
        return strongest(declared)
    if name in python_locked_packages(project_path):
        return DependencyType.TRANSITIVE
    return None
