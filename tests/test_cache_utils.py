"""Tests for utils/cache.py — lightweight TTL cache."""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conftest import FakeClock
from utils.cache import TTLCache


class TestTTLCache:
    def test_basic_set_get(self):
        cache = TTLCache()
        cache.set("key", "value")
        assert cache.get("key") == "value"

    def test_miss_returns_none(self):
        cache = TTLCache()
        assert cache.get("nonexistent") is None

    def test_ttl_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set("key", "value")
        clock.advance(59)
        assert cache.get("key") == "value"
        clock.advance(2)
        assert cache.get("key") is None

    def test_stale_value_survives_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=1, clock=clock)
        cache.set("key", "value")
        clock.advance(5)
        assert cache.get("key") is None
        assert cache.get_stale("key") == "value"

    def test_invalidate_keeps_stale_copy(self):
        cache = TTLCache()
        cache.set("voters", [1, 2])
        cache.invalidate("voters")
        assert cache.get("voters") is None
        assert cache.get_stale("voters") == [1, 2]

    def test_invalidate_missing_no_error(self):
        TTLCache().invalidate("nope")

    def test_clear(self):
        cache = TTLCache()
        cache.set("k1", "v1")
        cache.set("k2", "v2")
        cache.clear()
        assert cache.get("k1") is None
        assert cache.get_stale("k2") is None

    def test_stats_tracks_hits_misses(self):
        cache = TTLCache()
        cache.set("k", "v")
        cache.get("k")
        cache.get("nope")
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    def test_stats_counts_fresh_entries(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("b")
        assert cache.stats()["size"] == 1

    def test_maxsize_eviction(self):
        clock = FakeClock()
        cache = TTLCache(maxsize=2, clock=clock)
        cache.set("k1", "v1")
        clock.advance(1)
        cache.set("k2", "v2")
        cache.set("k3", "v3")
        assert cache.get_stale("k1") is None
        assert cache.get("k3") == "v3"

    def test_overwrite_existing(self):
        cache = TTLCache()
        cache.set("k", "old")
        cache.set("k", "new")
        assert cache.get("k") == "new"

    def test_delete(self):
        cache = TTLCache()
        cache.set("k", "v")
        cache.delete("k")
        assert cache.get_stale("k") is None
