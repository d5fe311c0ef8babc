"""
PriceWatch — Error Taxonomy

Every failure the engine raises is a PriceWatchError subclass carrying a
machine-readable code, free-form context and the time it was raised.

Propagation policy:
- ExtractionError / NetworkError: caught per item by the scheduler and
  recorded on the product (last_check_status, last_error) + retry queue.
- RateLimitError: recovered locally with a short fixed wait.
- ValidationError: raised synchronously to the caller (bad alert/settings).
- StorageError: logged; the bulk sweep write is skipped, never retried mid-sweep.
"""

from __future__ import annotations

import time
from typing import Any


class PriceWatchError(Exception):
    """Base class for all engine errors."""

    code: str = "UNKNOWN"

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}
        self.timestamp: float = time.time()

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging or storing on a product record."""
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp,
        }


class ExtractionError(PriceWatchError):
    """No extraction strategy produced a valid price."""

    code = "EXTRACTION_ERROR"


class NetworkError(PriceWatchError):
    """Non-2xx response, unusable body, or aborted/timed-out request."""

    code = "NETWORK_ERROR"


class ValidationError(PriceWatchError):
    """Malformed alert, settings or product payload."""

    code = "VALIDATION_ERROR"


class RateLimitError(PriceWatchError):
    """Token bucket exhausted."""

    code = "RATE_LIMIT_ERROR"

    def __init__(self, message: str, retry_after: float = 0.0) -> None:
        super().__init__(message, {"retry_after": retry_after})
        # Seconds until the next token becomes available.
        self.retry_after = retry_after


class StorageError(PriceWatchError):
    """Persistence read/write failure."""

    code = "STORAGE_ERROR"
