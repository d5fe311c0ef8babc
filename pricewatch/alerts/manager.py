"""
PriceWatch — Alert Manager

Creation (validated), persistence helpers, and the sweep-time alert pass.

check_all_alerts() is the only code that mutates triggered_at /
last_checked. Triggered alerts stay in storage; deletion is always an
explicit remove_alert().
"""

from __future__ import annotations

from typing import Any, NamedTuple

import structlog

from pricewatch.alerts.evaluator import evaluate
from pricewatch.config import AlertType, settings
from pricewatch.errors import ValidationError
from pricewatch.models.alert import Alert, AlertEvaluation
from pricewatch.models.product import TrackedProduct, utcnow
from pricewatch.storage.base import Storage
from pricewatch.storage.repositories import AlertRepository
from pricewatch.utils.currency import sanitize_currency
from pricewatch.utils.validators import is_valid_url

logger = structlog.get_logger(__name__)

_PERCENT_TYPES = (AlertType.PERCENTAGE_DROP, AlertType.PERCENTAGE_RISE)


class TriggeredAlert(NamedTuple):
    alert: Alert
    product: TrackedProduct
    evaluation: AlertEvaluation


def create_alert(
    product_url: str,
    alert_type: AlertType | str,
    *,
    product_name: str | None = None,
    target_price: float | None = None,
    target_percent: float | None = None,
    current_price: float | None = None,
    currency: str | None = None,
    enabled: bool = True,
) -> Alert:
    """
    Build a validated alert.

    Raises:
        ValidationError: missing URL, unknown type, non-positive target
            price, or a percentage outside (0, 100].
    """
    if not product_url or not is_valid_url(product_url):
        raise ValidationError("A valid product URL is required", {"product_url": product_url})

    try:
        kind = AlertType(alert_type)
    except ValueError as e:
        raise ValidationError(f"Invalid alert type: {alert_type}", {"type": alert_type}) from e

    if kind == AlertType.TARGET_PRICE and (target_price is None or target_price <= 0):
        raise ValidationError(
            "Target price must be a positive number",
            {"target_price": target_price},
        )
    if kind in _PERCENT_TYPES and (
        target_percent is None or target_percent <= 0 or target_percent > 100
    ):
        raise ValidationError(
            "Target percentage must be between 0 and 100",
            {"target_percent": target_percent},
        )

    return Alert(
        product_url=product_url,
        product_name=product_name or "Unknown Product",
        type=kind,
        target_price=float(target_price) if kind == AlertType.TARGET_PRICE else None,
        target_percent=float(target_percent) if kind in _PERCENT_TYPES else None,
        base_price=float(current_price) if current_price and current_price > 0 else None,
        currency=sanitize_currency(currency, default=settings.DEFAULT_CURRENCY),
        enabled=enabled,
    )


class AlertManager:
    """Alert CRUD over storage plus the evaluation pass."""

    def __init__(self, storage: Storage) -> None:
        self.repository = AlertRepository(storage)

    async def add_alert(self, product_url: str, alert_type: AlertType | str, **options: Any) -> Alert:
        alert = create_alert(product_url, alert_type, **options)
        return await self.repository.add(alert)

    async def remove_alert(self, alert_id: str) -> list[Alert]:
        return await self.repository.remove(alert_id)

    async def toggle_alert(self, alert_id: str) -> list[Alert]:
        return await self.repository.toggle(alert_id)

    async def alerts_for_product(self, product_url: str) -> list[Alert]:
        return await self.repository.for_product(product_url)

    async def load(self) -> list[Alert]:
        return await self.repository.load()

    async def check_all_alerts(self, products: list[TrackedProduct]) -> list[TriggeredAlert]:
        """
        Evaluate every enabled alert against its product's current price.

        Stamps last_checked on each evaluated alert and triggered_at on each
        triggered one, then persists the alert list once.
        """
        alerts = await self.repository.load()
        if not alerts:
            return []

        by_url = {p.url: p for p in products}
        triggered: list[TriggeredAlert] = []
        now = utcnow()

        for alert in alerts:
            if not alert.enabled:
                continue
            product = by_url.get(alert.product_url)
            if product is None:
                continue

            result = evaluate(alert, product.price)
            if result.triggered:
                alert.triggered_at = now
                triggered.append(TriggeredAlert(alert, product, result))
                logger.info(
                    "alert_triggered",
                    alert_id=alert.id,
                    type=alert.type.value,
                    url=alert.product_url,
                    price=product.price,
                    source="alerts",
                )
            alert.last_checked = now

        await self.repository.save(alerts)
        return triggered
