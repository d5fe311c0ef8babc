"""
PriceWatch — Price Normalizer

Turns a short text fragment ("1.299,00 TL", "$1,299.50", "12,50 €") into a
numeric amount plus the currency it was written in.

Patterns are tried in order, most specific first, grouped by locale family:

    | Family | Thousands | Decimal | Tokens              |
    |:-------|:----------|:--------|:--------------------|
    | TR     | .         | ,       | TRY / TL / ₺        |
    | US/GB  | ,         | .       | $ / USD, £ / GBP    |
    | EU     | ambiguous: rightmost separator is decimal | € / EUR |
    | bare   | TR grouping, then US grouping, no token (lowest trust) |

The first pattern that matches wins. Results from the bare patterns carry
has_currency=False and need a default currency from the caller.

The EU rightmost-separator rule is a heuristic: a thousands-only number with
a single separator and 1-2 trailing digits ("1.50 €") is read as a decimal.
"""

from __future__ import annotations

import math
import re
from typing import NamedTuple

# Number shapes. Lookarounds keep a match from starting or ending inside a
# longer number ("1,299.50" must never yield "50").
_START = r"(?<![\d.,])"
_END = r"(?![.,]?\d)"
_TR_NUM = rf"{_START}(?:\d{{1,3}}(?:\.\d{{3}})+(?:,\d{{1,2}})?|\d+(?:,\d{{1,2}})?){_END}"
_US_NUM = rf"{_START}(?:\d{{1,3}}(?:,\d{{3}})+(?:\.\d{{1,2}})?|\d+(?:\.\d{{1,2}})?){_END}"
_EU_NUM = rf"{_START}(?:\d{{1,3}}(?:[.,]\d{{3}})+(?:[.,]\d{{1,2}})?|\d+(?:[.,]\d{{1,2}})?){_END}"
_TR_BARE = rf"{_START}(?:\d{{1,3}}(?:\.\d{{3}})+(?:,\d{{1,2}})?|\d+,\d{{1,2}}){_END}"

_TRY_TOKEN = r"(?:₺|(?<![A-Za-z])(?:TRY|TL)(?![A-Za-z]))"
_USD_TOKEN = r"(?:\$|(?<![A-Za-z])USD(?![A-Za-z]))"
_GBP_TOKEN = r"(?:£|(?<![A-Za-z])GBP(?![A-Za-z]))"
_EUR_TOKEN = r"(?:€|(?<![A-Za-z])EUR(?![A-Za-z]))"

_SYMBOLS = ("₺", "$", "£", "€")


class ParsedPrice(NamedTuple):
    """Normalizer output."""
    amount: float
    currency: str | None      # ISO code, None for bare numbers
    has_currency: bool
    has_symbol: bool = False  # a symbol (₺ $ £ €) rather than a code was present


class _Pattern(NamedTuple):
    name: str
    regex: re.Pattern[str]
    locale: str               # "tr" | "us" | "eu"
    currency: str | None


def _suffix(num: str, token: str) -> str:
    return rf"(?P<num>{num})\s*(?P<tok>{token})"


def _prefix(num: str, token: str) -> str:
    return rf"(?P<tok>{token})\s*(?P<num>{num})"


_PATTERNS: list[_Pattern] = [
    _Pattern("tr_suffix", re.compile(_suffix(_TR_NUM, _TRY_TOKEN)), "tr", "TRY"),
    _Pattern("tr_prefix", re.compile(_prefix(_TR_NUM, _TRY_TOKEN)), "tr", "TRY"),
    _Pattern("usd_prefix", re.compile(_prefix(_US_NUM, _USD_TOKEN)), "us", "USD"),
    _Pattern("usd_suffix", re.compile(_suffix(_US_NUM, _USD_TOKEN)), "us", "USD"),
    _Pattern("gbp_prefix", re.compile(_prefix(_US_NUM, _GBP_TOKEN)), "us", "GBP"),
    _Pattern("gbp_suffix", re.compile(_suffix(_US_NUM, _GBP_TOKEN)), "us", "GBP"),
    _Pattern("eur_suffix", re.compile(_suffix(_EU_NUM, _EUR_TOKEN)), "eu", "EUR"),
    _Pattern("eur_prefix", re.compile(_prefix(_EU_NUM, _EUR_TOKEN)), "eu", "EUR"),
    _Pattern("tr_bare", re.compile(rf"(?P<num>{_TR_BARE})"), "tr", None),
    _Pattern("us_bare", re.compile(rf"(?P<num>{_US_NUM})"), "us", None),
]


def _normalize_number(raw: str, locale: str) -> str:
    """Strip group separators and convert the decimal separator to '.'."""
    if locale == "tr":
        return raw.replace(".", "").replace(",", ".")
    if locale == "us":
        return raw.replace(",", "")

    # EU: rightmost separator decides when both appear.
    last_comma = raw.rfind(",")
    last_dot = raw.rfind(".")
    if last_comma >= 0 and last_dot >= 0:
        if last_comma > last_dot:
            return raw.replace(".", "").replace(",", ".")
        return raw.replace(",", "")

    sep = "," if last_comma >= 0 else "." if last_dot >= 0 else None
    if sep is None:
        return raw
    head, _, tail = raw.rpartition(sep)
    if raw.count(sep) == 1 and len(tail) <= 2:
        return f"{head}.{tail}"
    return raw.replace(sep, "")


def parse(text: str | None) -> ParsedPrice | None:
    """
    Parse a price fragment.

    Args:
        text: Trimmed text, at most ~30 chars (callers reject longer input).

    Returns:
        ParsedPrice with amount > 0, or None when nothing price-like matched.
    """
    if not text:
        return None

    for pattern in _PATTERNS:
        match = pattern.regex.search(text)
        if match is None:
            continue
        try:
            amount = float(_normalize_number(match.group("num"), pattern.locale))
        except ValueError:
            continue
        if math.isnan(amount) or math.isinf(amount) or amount <= 0:
            continue

        token = match.groupdict().get("tok") or ""
        return ParsedPrice(
            amount=amount,
            currency=pattern.currency,
            has_currency=pattern.currency is not None,
            has_symbol=token in _SYMBOLS,
        )

    return None


def parse_amount(value: object) -> float | None:
    """
    Parse a structured-data price value (number or string) to a positive float.

    JSON-LD and meta tags usually carry machine-formatted numbers ("1299.00"),
    but some retailers put display strings there, so strings go through parse().
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        text = str(value).strip()[:30]
        try:
            amount = float(text)
        except ValueError:
            parsed = parse(text)
            if parsed is None:
                return None
            amount = parsed.amount
    if math.isnan(amount) or math.isinf(amount) or amount <= 0:
        return None
    return amount
