"""
Tests for the TTL cache.

Covers expiry on read, LRU eviction at capacity, maintenance helpers,
statistics and coalesced async loads.
"""

from __future__ import annotations

import asyncio

import pytest

from factories import ManualClock
from pricewatch.fetch.cache import TTLCache


@pytest.fixture
def cache(clock: ManualClock) -> TTLCache:
    return TTLCache(default_ttl=60.0, max_size=3, clock=clock, name="test")


class TestExpiry:
    def test_fresh_entry_hits(self, cache: TTLCache) -> None:
        cache.set("a", 1)
        assert cache.get("a") == 1

    def test_expired_entry_misses_and_is_evicted(self, cache: TTLCache, clock: ManualClock) -> None:
        """A read after the TTL misses and removes the entry."""
        cache.set("a", 1)
        clock.advance(61)
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_entry_valid_at_exact_ttl(self, cache: TTLCache, clock: ManualClock) -> None:
        cache.set("a", 1)
        clock.advance(60)
        assert cache.get("a") == 1

    def test_per_entry_ttl(self, cache: TTLCache, clock: ManualClock) -> None:
        cache.set("short", 1, ttl=5)
        clock.advance(6)
        assert cache.has("short") is False

    def test_non_positive_ttl_never_expires(self, cache: TTLCache, clock: ManualClock) -> None:
        cache.set("forever", 1, ttl=0)
        clock.advance(1_000_000)
        assert cache.get("forever") == 1

    def test_default_value_on_miss(self, cache: TTLCache) -> None:
        assert cache.get("missing", "fallback") == "fallback"


class TestEviction:
    def test_least_recently_used_evicted_at_capacity(self, cache: TTLCache, clock: ManualClock) -> None:
        """Inserting a new key at capacity drops the least recently read entry."""
        cache.set("a", 1)
        clock.advance(1)
        cache.set("b", 2)
        clock.advance(1)
        cache.set("c", 3)
        clock.advance(1)
        cache.get("a")  # refresh a; b is now the oldest
        cache.set("d", 4)
        assert cache.has("b") is False
        assert cache.has("a") and cache.has("c") and cache.has("d")
        assert cache.stats()["evictions"] == 1

    def test_overwrite_never_evicts(self, cache: TTLCache) -> None:
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.set("a", 10)
        assert len(cache) == 3
        assert cache.get("a") == 10


class TestMaintenance:
    def test_delete_and_clear(self, cache: TTLCache) -> None:
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        cache.clear()
        assert len(cache) == 0

    def test_cleanup_removes_only_expired(self, cache: TTLCache, clock: ManualClock) -> None:
        cache.set("old", 1, ttl=5)
        cache.set("new", 2, ttl=100)
        clock.advance(10)
        assert cache.cleanup() == 1
        assert cache.has("new") is True

    def test_stats(self, cache: TTLCache, clock: ManualClock) -> None:
        cache.set("a", 1)
        cache.set("b", 2, ttl=5)
        cache.get("a")
        cache.get("zzz")
        clock.advance(10)
        stats = cache.stats()
        assert stats["name"] == "test"
        assert stats["size"] == 2
        assert stats["valid_entries"] == 1
        assert stats["expired_entries"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5


class TestGetOrSet:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_load(self, cache: TTLCache) -> None:
        """Two waiters on the same missing key run the factory once."""
        calls = 0
        release = asyncio.Event()

        async def factory() -> str:
            nonlocal calls
            calls += 1
            await release.wait()
            return "value"

        first = asyncio.create_task(cache.get_or_set("k", factory))
        second = asyncio.create_task(cache.get_or_set("k", factory))
        await asyncio.sleep(0)
        assert cache.stats()["pending_requests"] == 1
        release.set()

        assert await first == "value"
        assert await second == "value"
        assert calls == 1
        assert cache.get("k") == "value"
        assert cache.stats()["pending_requests"] == 0

    @pytest.mark.asyncio
    async def test_failed_load_is_not_cached(self, cache: TTLCache) -> None:
        async def failing() -> str:
            raise RuntimeError("down")

        with pytest.raises(RuntimeError):
            await cache.get_or_set("k", failing)
        assert cache.has("k") is False
        assert cache.stats()["pending_requests"] == 0

    @pytest.mark.asyncio
    async def test_cached_value_skips_factory(self, cache: TTLCache) -> None:
        cache.set("k", "cached")

        async def factory() -> str:
            raise AssertionError("factory should not run")

        assert await cache.get_or_set("k", factory) == "cached"
