"""
PriceWatch — Typed Repositories

Thin adapters between the raw storage documents (camelCase dict lists)
and the pydantic models. Records that no longer validate are skipped on
load with a warning, never raised.
"""

from __future__ import annotations

from typing import Any

import pydantic
import structlog

from pricewatch.config import TrackerSettings, settings
from pricewatch.errors import ValidationError
from pricewatch.models.alert import Alert
from pricewatch.models.product import TrackedProduct
from pricewatch.storage.base import (
    CUSTOM_SELECTORS,
    PRICE_ALERTS,
    SETTINGS,
    TRACKED_PRODUCTS,
    Storage,
)
from pricewatch.utils.validators import is_valid_url

logger = structlog.get_logger(__name__)


def _as_list(raw: Any) -> list[Any]:
    return raw if isinstance(raw, list) else []


class ProductRepository:
    """The 'trackedProducts' collection."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    async def load_raw(self) -> list[dict[str, Any]]:
        raw = _as_list(await self.storage.get(TRACKED_PRODUCTS, []))
        return [item for item in raw if isinstance(item, dict)]

    async def load(self) -> list[TrackedProduct]:
        products: list[TrackedProduct] = []
        for raw in await self.load_raw():
            try:
                products.append(TrackedProduct.model_validate(raw))
            except pydantic.ValidationError as e:
                logger.warning(
                    "product_record_invalid",
                    url=raw.get("url"),
                    errors=e.error_count(),
                    source="repositories",
                )
        return products

    async def count(self) -> int:
        return len(await self.load_raw())

    async def save(self, products: list[TrackedProduct]) -> None:
        await self.storage.set(TRACKED_PRODUCTS, [p.to_storage() for p in products])

    async def save_checked(self, products: list[TrackedProduct]) -> None:
        """
        Write checked products back over the stored records with the same URL.

        Stored records that failed validation on load stay where they are.
        Products with no stored counterpart are appended.
        """
        pending = {p.url: p.to_storage() for p in products}
        merged: list[Any] = []
        for raw in _as_list(await self.storage.get(TRACKED_PRODUCTS, [])):
            url = raw.get("url") if isinstance(raw, dict) else None
            merged.append(pending.pop(url, raw) if isinstance(url, str) else raw)
        merged.extend(pending.values())
        await self.storage.set(TRACKED_PRODUCTS, merged)

    async def get(self, url: str) -> TrackedProduct | None:
        for product in await self.load():
            if product.url == url:
                return product
        return None

    async def add(self, product: TrackedProduct) -> TrackedProduct:
        """
        Start tracking a product.

        Raises:
            ValidationError: bad URL, already tracked, or the catalog is full.
        """
        if not is_valid_url(product.url):
            raise ValidationError("Only http(s) product URLs can be tracked", {"url": product.url})

        products = await self.load()
        if any(p.url == product.url for p in products):
            raise ValidationError("Product is already tracked", {"url": product.url})
        if len(products) >= settings.MAX_TRACKED_PRODUCTS:
            raise ValidationError(
                f"Cannot track more than {settings.MAX_TRACKED_PRODUCTS} products",
                {"limit": settings.MAX_TRACKED_PRODUCTS},
            )

        await self.save_checked([product])
        logger.info("product_added", url=product.url, price=product.price, source="repositories")
        return product

    async def remove(self, url: str) -> bool:
        stored = _as_list(await self.storage.get(TRACKED_PRODUCTS, []))
        remaining = [
            raw for raw in stored if not (isinstance(raw, dict) and raw.get("url") == url)
        ]
        if len(remaining) == len(stored):
            return False
        await self.storage.set(TRACKED_PRODUCTS, remaining)
        logger.info("product_removed", url=url, source="repositories")
        return True

    async def update(self, product: TrackedProduct) -> bool:
        """Replace the stored record with the same URL."""
        if await self.get(product.url) is None:
            return False
        await self.save_checked([product])
        return True


class AlertRepository:
    """The 'priceAlerts' collection."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    async def load(self) -> list[Alert]:
        alerts: list[Alert] = []
        for raw in _as_list(await self.storage.get(PRICE_ALERTS, [])):
            try:
                alerts.append(Alert.model_validate(raw))
            except pydantic.ValidationError as e:
                logger.warning("alert_record_invalid", errors=e.error_count(), source="repositories")
        return alerts

    async def save(self, alerts: list[Alert]) -> None:
        await self.storage.set(PRICE_ALERTS, [a.to_storage() for a in alerts])

    async def add(self, alert: Alert) -> Alert:
        alerts = await self.load()
        alerts.append(alert)
        await self.save(alerts)
        logger.info("alert_added", alert_id=alert.id, type=alert.type.value, source="repositories")
        return alert

    async def remove(self, alert_id: str) -> list[Alert]:
        remaining = [a for a in await self.load() if a.id != alert_id]
        await self.save(remaining)
        return remaining

    async def toggle(self, alert_id: str) -> list[Alert]:
        alerts = await self.load()
        for alert in alerts:
            if alert.id == alert_id:
                alert.enabled = not alert.enabled
                await self.save(alerts)
                break
        return alerts

    async def for_product(self, product_url: str) -> list[Alert]:
        return [a for a in await self.load() if a.product_url == product_url]


class SettingsRepository:
    """The 'settings' document. Unreadable payloads fall back to defaults."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    async def load(self) -> TrackerSettings:
        raw = await self.storage.get(SETTINGS, {})
        try:
            return TrackerSettings.from_payload(raw if isinstance(raw, dict) else {})
        except ValidationError as e:
            logger.warning("settings_invalid_using_defaults", error=e.message, source="repositories")
            return TrackerSettings()

    async def save(self, tracker_settings: TrackerSettings) -> None:
        await self.storage.set(SETTINGS, tracker_settings.to_storage())


async def load_custom_selectors(storage: Storage) -> dict[str, Any]:
    """Read-only {domain: {selector, exampleText, lastSaved}} map."""
    raw = await storage.get(CUSTOM_SELECTORS, {})
    return raw if isinstance(raw, dict) else {}
