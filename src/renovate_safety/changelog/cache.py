"""File-based cache for acquired changelog evidence."""

import hashlib
import json
import os
import tempfile
import time
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from renovate_safety.config import DEFAULT_CACHE_DIR
from renovate_safety.core.models import ChangelogDiff, PackageUpdate
from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60
CACHE_SUFFIX = ".json"


def cache_key(update: PackageUpdate) -> str:
    """Stable key for a version range of a package."""
    raw = f"{update.name}@{update.from_version}->{update.to_version}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class ChangelogCache:
    """One JSON file per package update, holding a serialized ``ChangelogDiff``.

    Entries older than the TTL are treated as misses. Writes go to a
    temporary file in the cache directory and are renamed into place, so a
    reader never sees a partial entry.
    """

    def __init__(
        self,
        cache_dir: Path | None = None,
        ttl_seconds: int | None = DEFAULT_TTL_SECONDS,
    ) -> None:
        """Initialize the changelog cache.

        Args:
            cache_dir: Directory holding cache files.
            ttl_seconds: Time-to-live for entries; None disables expiry.
        """
        self.cache_dir = cache_dir or DEFAULT_CACHE_DIR
        self.ttl_seconds = ttl_seconds

    def _path(self, update: PackageUpdate) -> Path:
        return self.cache_dir / f"{cache_key(update)}{CACHE_SUFFIX}"

    def _is_expired(self, cached_at: float) -> bool:
        return self.ttl_seconds is not None and time.time() - cached_at > self.ttl_seconds

    def get(self, update: PackageUpdate) -> ChangelogDiff | None:
        """Return the cached changelog for an update, if fresh."""
        path = self._path(update)
        try:
            entry = json.loads(path.read_text(encoding="utf-8"))
            if self._is_expired(float(entry["cached_at"])):
                logger.debug("Cache entry for %s expired", update)
                return None
            return ChangelogDiff.model_validate(entry["changelog"])
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError, PydanticValidationError) as e:
            logger.debug("Ignoring unreadable cache entry %s: %s", path.name, e)
            return None

    def set(self, update: PackageUpdate, changelog: ChangelogDiff) -> None:
        """Store a changelog for an update."""
        entry = {"cached_at": time.time(), "changelog": changelog.model_dump(mode="json")}
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=".tmp-", suffix=CACHE_SUFFIX)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(entry, handle)
                os.replace(tmp_name, self._path(update))
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning("Could not write changelog cache for %s: %s", update, e)

    def _entries(self) -> list[Path]:
        if not self.cache_dir.is_dir():
            return []
        return [p for p in self.cache_dir.glob(f"*{CACHE_SUFFIX}") if not p.name.startswith(".tmp-")]

    def clear_expired(self) -> int:
        """Remove expired entries from cache.

        Returns:
            Number of entries removed.
        """
        removed = 0
        for path in self._entries():
            try:
                entry = json.loads(path.read_text(encoding="utf-8"))
                expired = self._is_expired(float(entry["cached_at"]))
            except (OSError, ValueError, KeyError, TypeError):
                expired = True
            if expired:
                path.unlink(missing_ok=True)
                removed += 1
        if removed:
            logger.debug("Cleared %d expired cache entries", removed)
        return removed

    def clear_all(self) -> int:
        """Remove every entry.

        Returns:
            Number of entries removed.
        """
        entries = self._entries()
        for path in entries:
            path.unlink(missing_ok=True)
        logger.debug("Cleared all cache entries")
        return len(entries)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        entries = self._entries()
        return {
            "entries": len(entries),
            "size_bytes": sum(p.stat().st_size for p in entries),
            "cache_dir": str(self.cache_dir),
            "ttl_seconds": self.ttl_seconds,
        }
