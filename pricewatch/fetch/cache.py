"""
PriceWatch — TTL Cache

In-memory key/value cache with per-entry expiry and LRU eviction.

    - get() on an expired entry evicts it and misses.
    - Eviction only happens when inserting a NEW key at capacity; the entry
      with the oldest last_access goes. Overwriting an existing key never
      evicts.
    - ttl <= 0 stores an entry that never expires.

get_or_set() coalesces concurrent loads of the same key onto one task.
The clock is injectable so tests can step time without sleeping.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

_MISSING = object()


class CacheEntry:
    __slots__ = ("value", "created_at", "last_access", "expires_at")

    def __init__(self, value: Any, now: float, ttl: float) -> None:
        self.value = value
        self.created_at = now
        self.last_access = now
        self.expires_at: float | None = now + ttl if ttl > 0 else None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now > self.expires_at


class TTLCache:
    """TTL + LRU cache owned by a single engine instance."""

    def __init__(
        self,
        default_ttl: float,
        max_size: int,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ) -> None:
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.name = name
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._pending: dict[str, asyncio.Task[Any]] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return default

        now = self._clock()
        if entry.is_expired(now):
            del self._entries[key]
            self._misses += 1
            return default

        entry.last_access = now
        self._hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_lru()
        self._entries[key] = CacheEntry(
            value,
            self._clock(),
            self.default_ttl if ttl is None else ttl,
        )

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return False
        return True

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("cache_cleanup", cache=self.name, removed=len(expired), source="cache")
        return len(expired)

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
    ) -> Any:
        """
        Cached value, or the result of `factory()` stored under `key`.

        Concurrent callers for the same missing key share one factory call.
        A failing factory caches nothing and the error reaches every waiter.
        """
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, factory, ttl))
            self._pending[key] = task
        return await asyncio.shield(task)

    async def _load(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: float | None,
    ) -> Any:
        try:
            value = await factory()
            self.set(key, value, ttl)
            return value
        finally:
            self._pending.pop(key, None)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        expired = sum(1 for entry in self._entries.values() if entry.is_expired(now))
        lookups = self._hits + self._misses
        return {
            "name": self.name,
            "size": len(self._entries),
            "valid_entries": len(self._entries) - expired,
            "expired_entries": expired,
            "pending_requests": len(self._pending),
            "max_size": self.max_size,
            "default_ttl": self.default_ttl,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "hit_rate": round(self._hits / lookups, 3) if lookups else 0.0,
        }

    def _evict_lru(self) -> None:
        if not self._entries:
            return
        oldest = min(self._entries, key=lambda k: self._entries[k].last_access)
        del self._entries[oldest]
        self._evictions += 1
        logger.debug("cache_evicted", cache=self.name, key=oldest, source="cache")
