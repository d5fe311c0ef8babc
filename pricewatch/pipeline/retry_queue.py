"""
PriceWatch — Failure Retry Queue

URLs whose last fetch failed, keyed by URL and persisted under 'retryQueue'.

Lifecycle of an entry:
    sweep failure         -> created with attempts=0 (or last_error refreshed)
    retry pass failure    -> attempts += 1, dropped once attempts >= max_retries
    any success           -> removed
"""

from __future__ import annotations

import pydantic
import structlog

from pricewatch.models.retry import RetryEntry
from pricewatch.storage.base import RETRY_QUEUE, Storage

logger = structlog.get_logger(__name__)


class RetryQueue:
    """In-memory retry entries with explicit load/persist."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage
        self._entries: dict[str, RetryEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, url: object) -> bool:
        return url in self._entries

    def get(self, url: str) -> RetryEntry | None:
        return self._entries.get(url)

    @property
    def entries(self) -> list[RetryEntry]:
        return list(self._entries.values())

    async def load(self) -> None:
        raw = await self.storage.get(RETRY_QUEUE, [])
        self._entries = {}
        for item in raw if isinstance(raw, list) else []:
            try:
                entry = RetryEntry.model_validate(item)
            except pydantic.ValidationError:
                logger.warning("retry_entry_invalid", source="retry_queue")
                continue
            self._entries[entry.url] = entry

    async def persist(self) -> None:
        await self.storage.set(
            RETRY_QUEUE,
            [entry.model_dump(mode="json", by_alias=True) for entry in self._entries.values()],
        )

    def record_failure(self, url: str, error: str) -> RetryEntry:
        """Queue a URL after a failed sweep check."""
        entry = self._entries.get(url)
        if entry is None:
            entry = RetryEntry(url=url, last_error=error)
            self._entries[url] = entry
            logger.info("retry_queued", url=url, error=error, source="retry_queue")
        else:
            entry.last_error = error
        return entry

    def record_retry_failure(self, url: str, error: str, max_retries: int) -> RetryEntry | None:
        """
        Count a failed retry attempt.

        Returns the entry, or None when it hit the ceiling and was dropped.
        """
        entry = self._entries.get(url)
        if entry is None:
            return None
        entry.attempts += 1
        entry.last_error = error
        if entry.attempts >= max_retries:
            del self._entries[url]
            logger.warning(
                "retry_dropped",
                url=url,
                attempts=entry.attempts,
                error=error,
                source="retry_queue",
            )
            return None
        return entry

    def remove(self, url: str) -> bool:
        return self._entries.pop(url, None) is not None

    def due(self, max_retries: int) -> list[RetryEntry]:
        """Entries still below the retry ceiling, oldest failure first."""
        pending = [e for e in self._entries.values() if e.attempts < max_retries]
        return sorted(pending, key=lambda e: e.first_failed)

    def drop_exhausted(self, max_retries: int) -> list[str]:
        exhausted = [url for url, e in self._entries.items() if e.attempts >= max_retries]
        for url in exhausted:
            del self._entries[url]
        return exhausted
