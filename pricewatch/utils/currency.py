"""
PriceWatch — Currency Helpers

Symbol/code detection, code sanitizing, URL-based currency defaults,
display formatting and change arithmetic.

convert_currency() uses the approximate rate table in settings.CURRENCIES.
It exists for display only; tracked prices are never converted.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlparse

import structlog

from pricewatch.config import settings

logger = structlog.get_logger(__name__)

_CODE_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("TRY", re.compile(r"\b(?:TRY|TL)\b|Türk\s*Lirası", re.IGNORECASE)),
    ("USD", re.compile(r"\bUSD\b|US\s*Dollar", re.IGNORECASE)),
    ("EUR", re.compile(r"\bEUR\b|\bEuro\b", re.IGNORECASE)),
    ("GBP", re.compile(r"\bGBP\b|\bPound\b", re.IGNORECASE)),
]

_SYMBOL_CODES = {"₺": "TRY", "$": "USD", "€": "EUR", "£": "GBP"}

_EURO_TLDS = {
    "de", "fr", "it", "es", "nl", "be", "at", "ie", "pt", "fi", "gr",
    "sk", "si", "ee", "lv", "lt", "lu", "mt", "cy", "hr", "eu",
}


def detect_currency(text: str | None) -> str | None:
    """Return the ISO code named by a symbol or code in `text`, else None."""
    if not text:
        return None
    for symbol, code in _SYMBOL_CODES.items():
        if symbol in text:
            return code
    for code, pattern in _CODE_PATTERNS:
        if pattern.search(text):
            return code
    return None


def sanitize_currency(value: Any, default: str | None = None) -> str:
    """Clamp a currency value to a known ISO code."""
    fallback = default or settings.DEFAULT_CURRENCY
    if not isinstance(value, str) or not value.strip():
        return fallback
    stripped = value.strip()
    if stripped in _SYMBOL_CODES:
        return _SYMBOL_CODES[stripped]
    normalized = stripped.upper()[:3]
    if normalized == "TL":
        return "TRY"
    return normalized if normalized in settings.VALID_CURRENCY_CODES else fallback


def currency_from_url(url: str) -> str:
    """Default currency implied by a URL's top-level domain."""
    try:
        hostname = (urlparse(url).hostname or "").lower()
    except ValueError:
        return settings.DEFAULT_CURRENCY

    tld = hostname.rsplit(".", 1)[-1] if "." in hostname else ""
    if tld == "tr":
        return "TRY"
    if tld == "uk":
        return "GBP"
    if tld == "us":
        return "USD"
    if tld in _EURO_TLDS:
        return "EUR"
    return settings.DEFAULT_CURRENCY


def format_price(price: float, currency: str = "TRY") -> str:
    """'1299.00 ₺' style display string."""
    info = settings.CURRENCIES.get(currency)
    symbol = info["symbol"] if info else currency
    return f"{price:.2f} {symbol}"


def convert_currency(price: float, from_currency: str, to_currency: str) -> float:
    """
    Approximate conversion through TRY using the static rate table.

    Unknown codes fall back to TRY.
    """
    table = settings.CURRENCIES
    source = table.get(from_currency, table["TRY"])
    target = table.get(to_currency, table["TRY"])
    result = price / source["rate"] * target["rate"]

    logger.debug(
        "currency_converted",
        amount=price,
        from_currency=from_currency,
        to_currency=to_currency,
        result=round(result, 4),
        source="currency",
    )
    return result


def calculate_change(old_price: float | None, new_price: float | None) -> dict[str, Any] | None:
    """
    Absolute and percentage difference between two prices.

    Returns None when either price is missing or zero.
    """
    if not old_price or not new_price:
        return None

    diff = new_price - old_price
    percent = diff / old_price * 100
    sign = "+" if diff > 0 else ""
    return {
        "absolute": diff,
        "percent": percent,
        "formatted": f"{sign}{diff:.2f}",
        "percent_formatted": f"{sign}{percent:.1f}%",
        "is_increase": diff > 0,
        "is_decrease": diff < 0,
    }
