"""
PriceWatch — Input Validators

Used on every path where product records enter the system from outside the
engine (manual add, backup import, legacy data).
"""

from __future__ import annotations

import math
from typing import Any
from urllib.parse import urlparse

import pydantic
import structlog

from pricewatch.config import settings
from pricewatch.extraction.document import get_domain
from pricewatch.models.product import TrackedProduct
from pricewatch.utils.currency import sanitize_currency

logger = structlog.get_logger(__name__)


def is_valid_url(url: Any) -> bool:
    """http(s) URLs with a host only."""
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _to_price(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price <= 0 or price > settings.MAX_PRICE:
        return None
    return price


def sanitize_product_data(data: Any) -> TrackedProduct | None:
    """
    Coerce an untrusted product dict into a TrackedProduct.

    Returns None when the record has no usable price, name or URL.
    Optional fields that fail validation are dropped rather than rejecting
    the whole record.
    """
    if not isinstance(data, dict):
        return None

    price = _to_price(data.get("price"))
    name = str(data.get("name") or "").strip()
    url = data.get("url")
    if price is None or len(name) < settings.NAME_MIN_LENGTH or not is_valid_url(url):
        return None

    record: dict[str, Any] = {
        "url": url,
        "name": name[: settings.NAME_MAX_LENGTH],
        "price": price,
        "previousPrice": _to_price(data.get("previousPrice")),
        "initialPrice": _to_price(data.get("initialPrice")) or price,
        "currency": sanitize_currency(data.get("currency")),
        "site": data.get("site") or get_domain(url),
        "image": data.get("image") or None,
        "confidence": data.get("confidence", 0.8),
        "priceHistory": data.get("priceHistory") if isinstance(data.get("priceHistory"), list) else [],
        "lastCheck": data.get("lastCheck"),
        "lastCheckStatus": data.get("lastCheckStatus"),
        "lastError": data.get("lastError"),
        "customSelectorDomain": data.get("customSelectorDomain"),
    }
    if data.get("addedDate") is not None:
        record["addedDate"] = data["addedDate"]

    try:
        return TrackedProduct.model_validate(record)
    except pydantic.ValidationError as e:
        # Retry with only the required fields before giving up.
        logger.debug(
            "product_optional_fields_dropped",
            url=url,
            errors=e.error_count(),
            source="validators",
        )
    try:
        return TrackedProduct.model_validate(
            {"url": url, "name": record["name"], "price": price, "currency": record["currency"]}
        )
    except pydantic.ValidationError as e:
        logger.warning("product_rejected", url=url, error=str(e), source="validators")
        return None
