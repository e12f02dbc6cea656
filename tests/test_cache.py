"""Tests for the in-memory TTL cache."""

import pytest

from core.cache import CacheEntry, TTLCache


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> TTLCache:
    return TTLCache(default_ttl=60, name="test", clock=clock)


class TestCacheEntry:
    def test_expires_only_past_ttl(self):
        entry = CacheEntry(value="v", inserted_at=100.0, ttl=10)
        assert not entry.is_expired(110.0)
        assert entry.is_expired(110.1)


class TestGetAndSet:
    def test_fresh_entry_is_returned(self, cache):
        cache.set("users:all:none", [{"id": 1}])
        assert cache.get("users:all:none") == [{"id": 1}]

    def test_missing_key_returns_default(self, cache):
        assert cache.get("nothing") is None
        assert cache.get("nothing", default=[]) == []

    def test_falsy_values_are_cached(self, cache):
        cache.set("empty", [])
        assert cache.get("empty", default="miss") == []

    def test_expired_entry_is_a_miss_and_evicted(self, cache, clock):
        cache.set("k", "v", ttl=30)
        clock.advance(31)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_default_ttl_applies_without_explicit_ttl(self, cache, clock):
        cache.set("k", "v")
        clock.advance(59)
        assert cache.get("k") == "v"
        clock.advance(2)
        assert cache.get("k") is None

    def test_overwrite_replaces_value_and_resets_age(self, cache, clock):
        cache.set("k", "old", ttl=10)
        clock.advance(8)
        cache.set("k", "new", ttl=10)
        clock.advance(8)
        assert cache.get("k") == "new"

    def test_contains_respects_expiry(self, cache, clock):
        cache.set("k", "v", ttl=5)
        assert "k" in cache
        clock.advance(6)
        assert "k" not in cache


class TestDeletion:
    def test_delete_reports_presence(self, cache):
        cache.set("k", "v")
        assert cache.delete("k") is True
        assert cache.delete("k") is False

    def test_clear_empties_cache(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.clear() == 2
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_delete_pattern_matches_substring(self, cache):
        cache.set("users:all:none", [])
        cache.set("users:IT:none", [])
        cache.set("project-tasks:1:all:none", [])

        assert cache.delete_pattern("users") == 2
        assert cache.keys() == ["project-tasks:1:all:none"]

    def test_delete_pattern_ignores_trailing_star(self, cache):
        cache.set("dashboard:stats", {})
        assert cache.delete_pattern("dashboard:*") == 1

    def test_delete_pattern_without_match(self, cache):
        cache.set("users:all:none", [])
        assert cache.delete_pattern("messages") == 0
        assert len(cache) == 1


class TestCleanup:
    def test_cleanup_removes_only_expired_entries(self, cache, clock):
        cache.set("short", 1, ttl=10)
        cache.set("long", 2, ttl=100)
        clock.advance(50)

        assert cache.cleanup() == 1
        assert cache.keys() == ["long"]
        assert cache.get("long") == 2

    def test_cleanup_on_fresh_cache(self, cache):
        cache.set("k", "v")
        assert cache.cleanup() == 0


class TestStats:
    def test_hits_and_misses_are_counted(self, cache):
        cache.set("k", "v")
        cache.get("k")
        cache.get("k")
        cache.get("other")

        stats = cache.stats()
        assert stats["entries"] == 1
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["default_ttl"] == 60
