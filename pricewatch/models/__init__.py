"""
Models package — pydantic domain records plus the SQLAlchemy storage table.
"""

from pricewatch.models.alert import Alert, AlertEvaluation
from pricewatch.models.base import Base
from pricewatch.models.kv_entry import KVEntry
from pricewatch.models.product import PricePoint, TrackedProduct
from pricewatch.models.retry import RetryEntry

__all__ = [
    "Alert",
    "AlertEvaluation",
    "Base",
    "KVEntry",
    "PricePoint",
    "RetryEntry",
    "TrackedProduct",
]
