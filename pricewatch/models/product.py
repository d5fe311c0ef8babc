"""
PriceWatch — Tracked Product Model

A product the engine watches, keyed by URL. Stored as a camelCase JSON
document under the 'trackedProducts' storage key.

Invariant: `price` is always the most recently observed value. A change
moves the old price into `previous_price` and appends {old price, last_check}
to `price_history` (capped, oldest evicted) before overwriting.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pricewatch.config import CheckStatus, settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PricePoint(BaseModel):
    """One historical price observation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    price: float
    date: datetime


class TrackedProduct(BaseModel):
    """Persistent record of a tracked product."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str
    name: str
    price: float = Field(gt=0)
    previous_price: float | None = None
    initial_price: float | None = None
    currency: str = settings.DEFAULT_CURRENCY
    site: str | None = None
    image: str | None = None
    price_history: list[PricePoint] = Field(default_factory=list)
    added_date: datetime = Field(default_factory=utcnow)
    last_check: datetime | None = None
    last_check_status: CheckStatus | None = None
    last_error: str | None = None
    confidence: float = Field(default=0.8, ge=0, le=1)
    custom_selector_domain: str | None = None

    def model_post_init(self, __context: Any) -> None:
        if self.initial_price is None:
            self.initial_price = self.price

    def apply_price(self, new_price: float, checked_at: datetime | None = None) -> bool:
        """
        Merge a freshly observed price into this record.

        Returns True when the price moved by more than PRICE_CHANGE_EPSILON.
        The check timestamp and status are updated either way.
        """
        checked_at = checked_at or utcnow()
        old_price = self.price
        changed = abs(new_price - old_price) > settings.PRICE_CHANGE_EPSILON

        if changed:
            self.price_history.append(
                PricePoint(price=old_price, date=self.last_check or checked_at)
            )
            overflow = len(self.price_history) - settings.PRICE_HISTORY_LIMIT
            if overflow > 0:
                del self.price_history[:overflow]
            self.previous_price = old_price
            self.price = new_price

        self.last_check = checked_at
        self.last_check_status = CheckStatus.SUCCESS
        self.last_error = None
        return changed

    def mark_failure(
        self,
        status: CheckStatus,
        error: str,
        checked_at: datetime | None = None,
    ) -> None:
        """Record a failed check without touching price state."""
        self.last_check = checked_at or utcnow()
        self.last_check_status = status
        self.last_error = error

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
