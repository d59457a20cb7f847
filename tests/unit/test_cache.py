"""Tests for the on-disk changelog cache."""

import json
import time
from pathlib import Path

from renovate_safety.changelog.cache import ChangelogCache, cache_key
from renovate_safety.core.models import ChangelogDiff, ChangelogSource, PackageUpdate

UPDATE = PackageUpdate(name="express", from_version="4.18.2", to_version="5.0.0")
CHANGELOG = ChangelogDiff(
    content="## 5.0.0\n\n- drop Node 14",
    source=ChangelogSource.RELEASE_NOTES,
    from_version="4.18.2",
    to_version="5.0.0",
)


class TestChangelogCache:
    """Tests for ChangelogCache."""

    def test_set_and_get(self, temp_dir: Path) -> None:
        """Test a stored changelog is returned unchanged."""
        cache = ChangelogCache(temp_dir / "cache")
        cache.set(UPDATE, CHANGELOG)
        assert cache.get(UPDATE) == CHANGELOG

    def test_miss(self, temp_dir: Path) -> None:
        """Test unknown updates are misses."""
        assert ChangelogCache(temp_dir).get(UPDATE) is None

    def test_key_depends_on_range(self) -> None:
        """Test different version ranges do not share entries."""
        other = PackageUpdate(name="express", from_version="4.18.2", to_version="4.19.0")
        assert cache_key(UPDATE) != cache_key(other)
        assert cache_key(UPDATE) == cache_key(UPDATE.model_copy())

    def test_expired_entry_is_a_miss(self, temp_dir: Path) -> None:
        """Test entries older than the TTL are ignored and cleared."""
        cache = ChangelogCache(temp_dir, ttl_seconds=60)
        cache.set(UPDATE, CHANGELOG)
        path = temp_dir / f"{cache_key(UPDATE)}.json"
        entry = json.loads(path.read_text())
        entry["cached_at"] = time.time() - 3600
        path.write_text(json.dumps(entry))

        assert cache.get(UPDATE) is None
        assert cache.clear_expired() == 1
        assert not path.exists()

    def test_no_ttl_never_expires(self, temp_dir: Path) -> None:
        """Test a None TTL keeps entries forever."""
        cache = ChangelogCache(temp_dir, ttl_seconds=None)
        cache.set(UPDATE, CHANGELOG)
        path = temp_dir / f"{cache_key(UPDATE)}.json"
        entry = json.loads(path.read_text())
        entry["cached_at"] = 0
        path.write_text(json.dumps(entry))
        assert cache.get(UPDATE) == CHANGELOG

    def test_corrupted_entry_is_a_miss(self, temp_dir: Path) -> None:
        """Test unreadable entries are ignored and removed as expired."""
        cache = ChangelogCache(temp_dir)
        (temp_dir / f"{cache_key(UPDATE)}.json").write_text("{not json")
        assert cache.get(UPDATE) is None
        assert cache.clear_expired() == 1

    def test_clear_all_and_stats(self, temp_dir: Path) -> None:
        """Test clearing every entry and reporting statistics."""
        cache = ChangelogCache(temp_dir / "cache")
        cache.set(UPDATE, CHANGELOG)
        cache.set(PackageUpdate(name="lodash", from_version="4.17.20", to_version="4.17.21"), CHANGELOG)

        stats = cache.get_stats()
        assert stats["entries"] == 2
        assert stats["size_bytes"] > 0

        assert cache.clear_all() == 2
        assert cache.get(UPDATE) is None
        assert cache.get_stats()["entries"] == 0

    def test_missing_directory(self, temp_dir: Path) -> None:
        """Test clearing a cache that was never written."""
        cache = ChangelogCache(temp_dir / "never")
        assert cache.clear_all() == 0
        assert cache.clear_expired() == 0
