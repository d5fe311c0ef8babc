"""
Tests for the token bucket rate limiter.
"""

from __future__ import annotations

import pytest

from factories import ManualClock
from pricewatch.errors import RateLimitError
from pricewatch.fetch.rate_limiter import TokenBucket


class TestTokenBucket:
    def test_starts_full(self, clock: ManualClock) -> None:
        bucket = TokenBucket(capacity=5, window_seconds=60, clock=clock)
        assert bucket.tokens == pytest.approx(5.0)

    def test_consumes_one_token_per_check(self, clock: ManualClock) -> None:
        bucket = TokenBucket(capacity=5, window_seconds=60, clock=clock)
        bucket.check_limit()
        bucket.check_limit()
        assert bucket.tokens == pytest.approx(3.0)

    def test_exhausted_bucket_raises_with_retry_after(self, clock: ManualClock) -> None:
        """With 0 tokens at 1 token / 12s, the wait is 12 seconds."""
        bucket = TokenBucket(capacity=5, window_seconds=60, clock=clock)
        for _ in range(5):
            bucket.check_limit()
        with pytest.raises(RateLimitError) as exc_info:
            bucket.check_limit()
        assert exc_info.value.retry_after == pytest.approx(12.0)

    def test_refills_lazily_over_time(self, clock: ManualClock) -> None:
        bucket = TokenBucket(capacity=5, window_seconds=60, clock=clock)
        for _ in range(5):
            bucket.check_limit()
        clock.advance(12)
        bucket.check_limit()
        assert bucket.tokens == pytest.approx(0.0)

    def test_refill_capped_at_capacity(self, clock: ManualClock) -> None:
        bucket = TokenBucket(capacity=5, window_seconds=60, clock=clock)
        bucket.check_limit()
        clock.advance(3600)
        assert bucket.tokens == pytest.approx(5.0)

    def test_failed_check_consumes_nothing(self, clock: ManualClock) -> None:
        bucket = TokenBucket(capacity=1, window_seconds=100, clock=clock)
        bucket.check_limit()
        clock.advance(50)
        with pytest.raises(RateLimitError):
            bucket.check_limit()
        assert bucket.tokens == pytest.approx(0.5)

    def test_refill_rate(self) -> None:
        assert TokenBucket(capacity=100, window_seconds=3600).refill_rate == pytest.approx(100 / 3600)

    @pytest.mark.parametrize(("capacity", "window"), [(0, 60), (-1, 60), (5, 0)])
    def test_rejects_non_positive_configuration(self, capacity: int, window: float) -> None:
        with pytest.raises(ValueError):
            TokenBucket(capacity=capacity, window_seconds=window)
