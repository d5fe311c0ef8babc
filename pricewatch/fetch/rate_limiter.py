"""
PriceWatch — Token Bucket Rate Limiter

Capacity = requests per window (default: per hour). Tokens refill lazily:
each check_limit() call first credits capacity / window tokens for the time
elapsed since the previous call, capped at capacity, then consumes one.

    bucket starts full
    check_limit() -> consumes 1 token
                  -> raises RateLimitError(retry_after) when < 1 token left

Callers decide how to recover; the scheduler waits briefly and proceeds.
"""

from __future__ import annotations

import time
from typing import Callable

import structlog

from pricewatch.config import settings
from pricewatch.errors import RateLimitError

logger = structlog.get_logger(__name__)


class TokenBucket:
    """Lazy-refill token bucket."""

    def __init__(
        self,
        capacity: int | None = None,
        window_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.capacity = float(capacity if capacity is not None else settings.RATE_LIMIT_PER_HOUR)
        self.window_seconds = (
            window_seconds if window_seconds is not None else settings.RATE_LIMIT_WINDOW_SECONDS
        )
        if self.capacity <= 0 or self.window_seconds <= 0:
            raise ValueError("capacity and window_seconds must be positive")

        self._clock = clock
        self._tokens = self.capacity
        self._last_refill = clock()

    @property
    def refill_rate(self) -> float:
        """Tokens credited per second."""
        return self.capacity / self.window_seconds

    @property
    def tokens(self) -> float:
        """Tokens available right now (refills as a side effect)."""
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    def check_limit(self) -> None:
        """
        Consume one token.

        Raises:
            RateLimitError: bucket is empty; retry_after is the number of
                seconds until one token will be available.
        """
        self._refill()
        if self._tokens < 1:
            retry_after = (1 - self._tokens) / self.refill_rate
            logger.warning(
                "rate_limit_exceeded",
                capacity=self.capacity,
                tokens=round(self._tokens, 3),
                retry_after=round(retry_after, 2),
                source="rate_limiter",
            )
            raise RateLimitError(
                f"Rate limit exceeded. Retry after {retry_after:.0f}s",
                retry_after=retry_after,
            )
        self._tokens -= 1
