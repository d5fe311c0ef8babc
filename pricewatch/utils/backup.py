"""
PriceWatch — Backup / Restore

Export format (version header + data sections):

    {
        "version": "2.1.0",
        "exportDate": "...",
        "metadata": {"productCount": n, "alertCount": n},
        "data": {
            "products": [...],
            "settings": {...},
            "alerts": [...],
            "customSelectors": {...}
        }
    }

Import modes:
- replace: each imported section overwrites the stored one
- merge:   products are merged by URL (price history union, sorted by date);
           alerts are added unless one with the same product URL and type exists

Payloads whose major version is below 2 are treated as the v1 layout
(top-level "products" / "settings") and migrated.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, NamedTuple

import pydantic
import structlog

from pricewatch.config import TrackerSettings, settings
from pricewatch.errors import ValidationError
from pricewatch.models.alert import Alert, generate_alert_id
from pricewatch.models.product import TrackedProduct
from pricewatch.storage.base import (
    CUSTOM_SELECTORS,
    PRICE_ALERTS,
    RETRY_QUEUE,
    SETTINGS,
    TRACKED_PRODUCTS,
    Storage,
)
from pricewatch.storage.repositories import AlertRepository, ProductRepository
from pricewatch.utils.validators import sanitize_product_data

logger = structlog.get_logger(__name__)


class ImportResult(NamedTuple):
    products_imported: int = 0
    products_skipped: int = 0
    alerts_imported: int = 0
    settings_restored: bool = False
    migrated: bool = False


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

async def export_all(storage: Storage) -> dict[str, Any]:
    """Snapshot every stored section under a version header."""
    products = await storage.get(TRACKED_PRODUCTS, []) or []
    alerts = await storage.get(PRICE_ALERTS, []) or []
    stored_settings = await storage.get(SETTINGS, {}) or {}
    selectors = await storage.get(CUSTOM_SELECTORS, {}) or {}

    logger.info(
        "backup_exported",
        products=len(products),
        alerts=len(alerts),
        source="backup",
    )
    return {
        "version": settings.EXPORT_VERSION,
        "exportDate": datetime.now(timezone.utc).isoformat(),
        "metadata": {
            "productCount": len(products),
            "alertCount": len(alerts),
        },
        "data": {
            "products": products,
            "settings": stored_settings,
            "alerts": alerts,
            "customSelectors": selectors,
        },
    }


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------

def merge_products(
    existing: list[TrackedProduct],
    imported: list[TrackedProduct],
) -> list[TrackedProduct]:
    """
    Merge imported products into existing ones by URL.

    Unknown URLs are appended. For a known URL the existing record is kept
    and the imported history points with unseen dates are added, then the
    history is re-sorted by date and capped to the newest entries.
    """
    by_url = {p.url: p for p in existing}

    for product in imported:
        current = by_url.get(product.url)
        if current is None:
            by_url[product.url] = product
            continue

        seen = {point.date for point in current.price_history}
        for point in product.price_history:
            if point.date not in seen:
                current.price_history.append(point)
                seen.add(point.date)
        current.price_history.sort(key=lambda point: point.date)
        overflow = len(current.price_history) - settings.PRICE_HISTORY_LIMIT
        if overflow > 0:
            del current.price_history[:overflow]

    return list(by_url.values())


def merge_alerts(existing: list[Alert], imported: list[Alert]) -> list[Alert]:
    """Add imported alerts not already covered by a (product_url, type) pair; new ids."""
    merged = list(existing)
    taken = {(a.product_url, a.type) for a in existing}

    for alert in imported:
        key = (alert.product_url, alert.type)
        if key in taken:
            continue
        merged.append(alert.model_copy(update={"id": generate_alert_id()}))
        taken.add(key)

    return merged


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

def _parse_payload(payload: str | bytes | dict[str, Any]) -> dict[str, Any]:
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValidationError("Backup is not valid JSON", {"error": str(e)}) from e
    if not isinstance(payload, dict):
        raise ValidationError("Backup must be a JSON object")
    return payload


def _major_version(version: Any) -> int:
    try:
        return int(str(version).split(".")[0])
    except ValueError:
        raise ValidationError("Backup version is not readable", {"version": version}) from None


def _sanitize_products(raw: Any) -> tuple[list[TrackedProduct], int]:
    products: list[TrackedProduct] = []
    skipped = 0
    for item in raw if isinstance(raw, list) else []:
        product = sanitize_product_data(item)
        if product is None:
            skipped += 1
        else:
            products.append(product)
    return products, skipped


def _parse_alerts(raw: Any) -> list[Alert]:
    alerts: list[Alert] = []
    for item in raw if isinstance(raw, list) else []:
        try:
            alerts.append(Alert.model_validate(item))
        except pydantic.ValidationError as e:
            logger.warning("backup_alert_skipped", errors=e.error_count(), source="backup")
    return alerts


def _cap(products: list[TrackedProduct]) -> tuple[list[TrackedProduct], int]:
    limit = settings.MAX_TRACKED_PRODUCTS
    if len(products) <= limit:
        return products, 0
    logger.warning(
        "backup_products_truncated",
        limit=limit,
        dropped=len(products) - limit,
        source="backup",
    )
    return products[:limit], len(products) - limit


async def migrate_from_v1(storage: Storage, payload: dict[str, Any]) -> ImportResult:
    """
    Import a v1 backup: a top-level product list and an optional settings
    document. Products missing history, status or confidence get defaults.
    """
    raw_products = payload.get("products")
    imported = 0
    skipped = 0

    if isinstance(raw_products, list):
        upgraded = [
            {
                **item,
                "priceHistory": item.get("priceHistory") or [],
                "confidence": item.get("confidence") or 0.7,
            }
            for item in raw_products
            if isinstance(item, dict)
        ]
        products, skipped = _sanitize_products(upgraded)
        skipped += len(raw_products) - len(upgraded)
        products, truncated = _cap(products)
        skipped += truncated
        await ProductRepository(storage).save(products)
        imported = len(products)

    restored = False
    if isinstance(payload.get("settings"), dict):
        await storage.set(SETTINGS, TrackerSettings.from_payload(payload["settings"]).to_storage())
        restored = True

    logger.info("backup_migrated_v1", products=imported, skipped=skipped, source="backup")
    return ImportResult(
        products_imported=imported,
        products_skipped=skipped,
        settings_restored=restored,
        migrated=True,
    )


async def import_data(
    storage: Storage,
    payload: str | bytes | dict[str, Any],
    *,
    merge: bool = False,
    skip_products: bool = False,
    skip_alerts: bool = False,
    skip_settings: bool = False,
) -> ImportResult:
    """
    Restore a backup produced by export_all().

    Raises:
        ValidationError: unreadable JSON, missing version/data, or a
            settings section outside the allowed ranges.
    """
    data = _parse_payload(payload)
    if not data.get("version"):
        raise ValidationError("Backup has no version header")

    if _major_version(data["version"]) < 2:
        return await migrate_from_v1(storage, data)

    sections = data.get("data")
    if not isinstance(sections, dict):
        raise ValidationError("Backup has no data section", {"version": data["version"]})

    products_imported = 0
    products_skipped = 0
    alerts_imported = 0
    settings_restored = False

    # Settings are validated first so a bad section rejects the whole import.
    new_settings: TrackerSettings | None = None
    if not skip_settings and isinstance(sections.get("settings"), dict):
        new_settings = TrackerSettings.from_payload(sections["settings"])

    if not skip_products and "products" in sections:
        product_repo = ProductRepository(storage)
        incoming, products_skipped = _sanitize_products(sections["products"])
        if merge:
            merged = merge_products(await product_repo.load(), incoming)
        else:
            merged = incoming
        merged, truncated = _cap(merged)
        products_skipped += truncated
        await product_repo.save(merged)
        products_imported = len(merged)

    if not skip_alerts and "alerts" in sections:
        alert_repo = AlertRepository(storage)
        incoming_alerts = _parse_alerts(sections["alerts"])
        if merge:
            alerts = merge_alerts(await alert_repo.load(), incoming_alerts)
        else:
            alerts = incoming_alerts
        await alert_repo.save(alerts)
        alerts_imported = len(alerts)

    if new_settings is not None:
        await storage.set(SETTINGS, new_settings.to_storage())
        settings_restored = True

    selectors = sections.get("customSelectors")
    if isinstance(selectors, dict) and selectors:
        stored = await storage.get(CUSTOM_SELECTORS, {}) or {}
        stored.update({domain: rule for domain, rule in selectors.items() if domain and rule})
        await storage.set(CUSTOM_SELECTORS, stored)

    result = ImportResult(
        products_imported=products_imported,
        products_skipped=products_skipped,
        alerts_imported=alerts_imported,
        settings_restored=settings_restored,
    )
    logger.info("backup_imported", merge=merge, **result._asdict(), source="backup")
    return result


# ---------------------------------------------------------------------------
# Clearing
# ---------------------------------------------------------------------------

async def clear_all(
    storage: Storage,
    *,
    keep_products: bool = False,
    keep_settings: bool = False,
    keep_alerts: bool = False,
) -> None:
    """Remove stored data. Custom selectors and the retry queue always go."""
    if not keep_products:
        await storage.remove(TRACKED_PRODUCTS)
    if not keep_settings:
        await storage.remove(SETTINGS)
    if not keep_alerts:
        await storage.remove(PRICE_ALERTS)
    await storage.remove(CUSTOM_SELECTORS)
    await storage.remove(RETRY_QUEUE)
    logger.info(
        "storage_cleared",
        kept_products=keep_products,
        kept_settings=keep_settings,
        kept_alerts=keep_alerts,
        source="backup",
    )
