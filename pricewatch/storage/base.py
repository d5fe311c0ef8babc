"""
PriceWatch — Storage Interface

Async key/value persistence. Values are JSON-compatible documents
(lists/dicts of primitives); implementations must not hand out references
to their internal state.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

TRACKED_PRODUCTS = "trackedProducts"
SETTINGS = "settings"
PRICE_ALERTS = "priceAlerts"
CUSTOM_SELECTORS = "customSelectors"
RETRY_QUEUE = "retryQueue"

ALL_KEYS = (TRACKED_PRODUCTS, SETTINGS, PRICE_ALERTS, CUSTOM_SELECTORS, RETRY_QUEUE)


@runtime_checkable
class Storage(Protocol):
    async def get(self, key: str, default: Any = None) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def keys(self) -> list[str]: ...
