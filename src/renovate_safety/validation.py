"""Validation of untrusted package names, versions and outbound URLs.

Package names and versions usually come from PR titles and bodies, so they
are checked before they are interpolated into registry URLs or cache paths.
"""

import re
from urllib.parse import urlparse

from renovate_safety.core.models import Ecosystem, PackageUpdate
from renovate_safety.errors import ValidationError

NPM_NAME_MAX_LENGTH = 214
VERSION_MAX_LENGTH = 256

NPM_NAME_PATTERN = re.compile(r"^(@[a-z0-9-~][a-z0-9-._~]*/)?[a-z0-9-~][a-z0-9-._~]*$")

# PEP 508 distribution names
PYPI_NAME_PATTERN = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9._-]*[A-Za-z0-9])?$")

# Semver (npm) and the common PEP 440 shapes: 1.2, 1.2.3, 1.2.3-beta.1, 2.0.0rc1, 1.0.post1
VERSION_PATTERN = re.compile(
    r"^v?\d+(?:\.\d+){0,3}(?:[-+._]?[0-9A-Za-z]+(?:[.+-][0-9A-Za-z]+)*)?$"
)
DIST_TAG_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$", re.IGNORECASE)

UNSAFE_PATTERNS = (
    re.compile(r"[;&|`$(){}\[\]<>\\]"),
    re.compile(r"\.\."),
    re.compile(r"[\x00-\x1f\x7f]"),
)

ALLOWED_HOSTS = frozenset(
    {
        "registry.npmjs.org",
        "api.npmjs.org",
        "pypi.org",
        "files.pythonhosted.org",
        "api.github.com",
        "github.com",
        "codeload.github.com",
        "raw.githubusercontent.com",
    }
)


def _check_unsafe(field: str, value: str) -> None:
    for pattern in UNSAFE_PATTERNS:
        if pattern.search(value):
            raise ValidationError(field, value, "contains unsafe characters")


def validate_npm_package_name(name: str) -> str:
    """Validate an npm package name.

    Args:
        name: Candidate package name, optionally scoped.

    Returns:
        The unchanged name.

    Raises:
        ValidationError: If the name is malformed or unsafe.
    """
    if not name:
        raise ValidationError("package name", name, "must be a non-empty string")
    if len(name) > NPM_NAME_MAX_LENGTH:
        raise ValidationError("package name", name, f"longer than {NPM_NAME_MAX_LENGTH} characters")
    _check_unsafe("package name", name)
    if not NPM_NAME_PATTERN.match(name):
        raise ValidationError("package name", name, "does not match npm naming rules")
    if name.startswith((".", "_")):
        raise ValidationError("package name", name, "must not start with '.' or '_'")
    return name


def normalize_pypi_name(name: str) -> str:
    """Normalize a PyPI distribution name (PEP 503)."""
    return re.sub(r"[-_.]+", "-", name).lower()


def validate_pypi_package_name(name: str) -> str:
    """Validate a PyPI distribution name.

    Returns:
        The PEP 503 normalized name.

    Raises:
        ValidationError: If the name is malformed or unsafe.
    """
    if not name:
        raise ValidationError("package name", name, "must be a non-empty string")
    _check_unsafe("package name", name)
    if not PYPI_NAME_PATTERN.match(name):
        raise ValidationError("package name", name, "does not match PEP 508 naming rules")
    return normalize_pypi_name(name)


def validate_version(version: str) -> str:
    """Validate a version string or dist-tag.

    Raises:
        ValidationError: If the version is malformed or unsafe.
    """
    if not version:
        raise ValidationError("version", version, "must be a non-empty string")
    if len(version) > VERSION_MAX_LENGTH:
        raise ValidationError("version", version, "too long")
    _check_unsafe("version", version)
    if not VERSION_PATTERN.match(version) and not DIST_TAG_PATTERN.match(version):
        raise ValidationError("version", version, "is neither a version number nor a dist-tag")
    return version


def validate_package_name(name: str, ecosystem: Ecosystem | None) -> str:
    """Validate a package name for the given ecosystem.

    Without an ecosystem the name must satisfy the npm rules or the PyPI
    rules, whichever applies.
    """
    if ecosystem == Ecosystem.NPM:
        return validate_npm_package_name(name)
    if ecosystem == Ecosystem.PYPI:
        validate_pypi_package_name(name)
        return name
    try:
        return validate_npm_package_name(name)
    except ValidationError:
        validate_pypi_package_name(name)
        return name


def validate_package_update(
    update: PackageUpdate,
    ecosystem: Ecosystem | None = None,
) -> PackageUpdate:
    """Validate every untrusted field of an update.

    Raises:
        ValidationError: On the first invalid field.
    """
    validate_package_name(update.name, ecosystem)
    validate_version(update.from_version)
    validate_version(update.to_version)
    return update


def is_allowed_url(url: str) -> bool:
    """Check whether a URL is HTTPS and targets an allowlisted host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme != "https" or not parsed.hostname:
        return False
    return parsed.hostname in ALLOWED_HOSTS


def ensure_allowed_url(url: str) -> str:
    """Return the URL unchanged, or raise if it is not allowlisted.

    Raises:
        ValidationError: If the URL is not HTTPS or its host is not trusted.
    """
    if not is_allowed_url(url):
        raise ValidationError("url", url, "only HTTPS requests to known registries are allowed")
    return url
