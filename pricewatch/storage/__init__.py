"""
PriceWatch — Storage Layer

Async key/value persistence (Storage protocol) with in-memory and
SQLAlchemy-backed implementations, plus typed repositories.
"""

from pricewatch.storage.base import (
    ALL_KEYS,
    CUSTOM_SELECTORS,
    PRICE_ALERTS,
    RETRY_QUEUE,
    SETTINGS,
    TRACKED_PRODUCTS,
    Storage,
)
from pricewatch.storage.memory import MemoryStorage
from pricewatch.storage.sql import SqlStorage

__all__ = [
    "ALL_KEYS",
    "CUSTOM_SELECTORS",
    "PRICE_ALERTS",
    "RETRY_QUEUE",
    "SETTINGS",
    "TRACKED_PRODUCTS",
    "MemoryStorage",
    "SqlStorage",
    "Storage",
]
