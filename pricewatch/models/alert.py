"""
PriceWatch — Price Alert Model

Alerts are created explicitly (pricewatch.alerts.manager.create_alert) and
stored under 'priceAlerts'. Only the alert pass of a sweep mutates
`triggered_at` / `last_checked`; alerts are never deleted automatically.
"""

from __future__ import annotations

import secrets
import time
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pricewatch.config import AlertType, Severity, settings
from pricewatch.models.product import utcnow


def generate_alert_id() -> str:
    return f"alert_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


class Alert(BaseModel):
    """A user-defined price alert on one product."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=generate_alert_id)
    product_url: str
    product_name: str = "Unknown Product"
    type: AlertType
    target_price: float | None = None
    target_percent: float | None = None
    base_price: float | None = None
    currency: str = settings.DEFAULT_CURRENCY
    enabled: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    triggered_at: datetime | None = None
    last_checked: datetime | None = None

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class AlertEvaluation(BaseModel):
    """Outcome of evaluating one alert against a current price."""

    triggered: bool
    message: str | None = None
    severity: Severity | None = None
