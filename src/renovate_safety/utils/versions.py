"""Version string helpers shared by the acquisition chain and the risk aggregator."""

import re
from dataclasses import dataclass

_NUMERIC_PART = re.compile(r"\d+")


def strip_tag_prefix(tag: str) -> str:
    """Reduce a release tag to its version part.

    Handles ``v1.2.3``, ``release-1.2.3`` and monorepo tags such as
    ``react@18.2.0``.
    """
    tag = tag.strip()
    at_index = tag.rfind("@")
    if at_index > 0:
        tag = tag[at_index + 1 :]
    match = re.search(r"\d", tag)
    if match and match.start() > 0 and re.fullmatch(r"[A-Za-z_-]*[vV]?|[vV=]", tag[: match.start()]):
        tag = tag[match.start() :]
    return tag


def parse_version(version: str) -> tuple[int, ...]:
    """Normalize a version string to a tuple of at most three integers.

    Args:
        version: Version or tag string.

    Returns:
        Tuple of version components, ``(0,)`` if nothing numeric was found.
    """
    version = strip_tag_prefix(version)
    # Ignore pre-release and build suffixes when comparing
    core = re.split(r"[-+]", version, maxsplit=1)[0]
    parts = _NUMERIC_PART.findall(core)
    return tuple(int(p) for p in parts[:3]) if parts else (0,)


def _pad(*versions: tuple[int, ...]) -> list[tuple[int, ...]]:
    width = max(len(v) for v in versions)
    return [v + (0,) * (width - len(v)) for v in versions]


def compare_versions(a: str, b: str) -> int:
    """Compare two versions.

    Returns:
        1 if ``a`` is newer, -1 if ``b`` is newer, 0 if they are equal.
    """
    va, vb = _pad(parse_version(a), parse_version(b))
    return (va > vb) - (va < vb)


def version_in_range(version: str, from_version: str, to_version: str) -> bool:
    """Check whether ``version`` lies in the half-open range ``(from, to]``."""
    v, fv, tv = _pad(parse_version(version), parse_version(from_version), parse_version(to_version))
    return fv < v <= tv


@dataclass(frozen=True)
class VersionJump:
    """Component-wise distance between two versions."""

    major: int
    minor: int
    patch: int

    @property
    def kind(self) -> str:
        """Name of the most significant component that changed."""
        if self.major > 0:
            return "major"
        if self.minor > 0:
            return "minor"
        if self.patch > 0:
            return "patch"
        return "none"


def analyze_version_jump(from_version: str, to_version: str) -> VersionJump:
    """Compute the version jump between two versions.

    Components are counted only from the first component that differs, so
    ``1.9.3 -> 2.0.0`` is one major step and not a negative minor step.
    Unparseable input is treated as a single major step.
    """
    if not _NUMERIC_PART.search(from_version) or not _NUMERIC_PART.search(to_version):
        return VersionJump(major=1, minor=0, patch=0)

    fv, tv = _pad(parse_version(from_version), parse_version(to_version), (0, 0, 0))[:2]
    major = tv[0] - fv[0]
    if major != 0:
        return VersionJump(major=max(major, 0), minor=0, patch=0)
    minor = tv[1] - fv[1]
    if minor != 0:
        return VersionJump(major=0, minor=max(minor, 0), patch=0)
    return VersionJump(major=0, minor=0, patch=max(tv[2] - fv[2], 0))


def is_major_upgrade(from_version: str, to_version: str) -> bool:
    """Check if the upgrade is a major version bump."""
    from_parts = _NUMERIC_PART.findall(strip_tag_prefix(from_version))
    to_parts = _NUMERIC_PART.findall(strip_tag_prefix(to_version))
    if from_parts and to_parts:
        return int(to_parts[0]) > int(from_parts[0])
    return False


def tag_candidates(version: str) -> list[str]:
    """Tag names a version may have been published under, in lookup order.

    Exact match first, then the ``v``-prefixed form, then the forms with a
    zero patch added, then the truncated ``major.minor`` form.
    """
    candidates = [version, f"v{version}", f"{version}.0", f"v{version}.0"]
    truncated = re.sub(r"^(\d+\.\d+)\.\d+.*$", r"\1", version)
    if truncated != version:
        candidates.extend([truncated, f"v{truncated}"])

    seen: set[str] = set()
    ordered: list[str] = []
    for candidate in candidates:
        if candidate not in seen:
            seen.add(candidate)
            ordered.append(candidate)
    return ordered
