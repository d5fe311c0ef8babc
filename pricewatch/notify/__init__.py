"""
PriceWatch — Notification Delivery

A Notifier receives Notification{title, message, severity} and delivers it
somewhere. Delivery failures are logged and swallowed; a notifier never
raises into the sweep.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from pricewatch.config import Severity
from pricewatch.models.product import TrackedProduct
from pricewatch.utils.currency import calculate_change


class Notification(BaseModel):
    title: str
    message: str
    severity: Severity = Severity.INFO
    url: str | None = None
    tags: list[str] = Field(default_factory=list)


@runtime_checkable
class Notifier(Protocol):
    async def notify(self, notification: Notification) -> bool: ...


def _truncate(text: str, length: int) -> str:
    return text if len(text) <= length else text[: length - 3] + "..."


def build_price_change_notification(
    product: TrackedProduct,
    old_price: float,
    new_price: float,
) -> Notification:
    """Generic 'price went down/up' message for a tracked product."""
    change = calculate_change(old_price, new_price) or {}
    dropped = bool(change.get("is_decrease"))
    arrow = "▼" if dropped else "▲"
    message = "\n".join([
        _truncate(product.name, 50),
        f"{old_price:.2f} → {new_price:.2f} {product.currency}",
        f"{arrow} {change.get('percent_formatted', '')}".rstrip(),
    ])
    return Notification(
        title="Price dropped!" if dropped else "Price went up",
        message=message,
        severity=Severity.SUCCESS if dropped else Severity.WARNING,
        url=product.url,
        tags=["price_change"],
    )
