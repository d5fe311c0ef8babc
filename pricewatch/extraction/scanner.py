"""
PriceWatch — Price Candidate Scanner

Collects every short, visible, price-looking text fragment in a document
for the heuristic strategy. Output is raw and unranked; see scorer.py.

There is no layout engine behind a markup parser, so the geometry fields on
a Candidate are estimates:

    font_size     inline font-size on the element or nearest ancestor, else
                  the user-agent default for the tag (h1 = 32px, ...)
    font_weight   inline font-weight, else 700 for b/strong/headings
    width/height  inline width/height or data-width/data-height, else
                  text length x font size
    y_position    inline top or data-y, else text-line index x line height
    x_position    inline left or data-x, else centred when text-align:center
"""

from __future__ import annotations

import re
from typing import NamedTuple

import structlog
from bs4 import BeautifulSoup, NavigableString, Tag

from pricewatch.config import settings
from pricewatch.extraction import normalizer
from pricewatch.extraction.document import element_text, is_visible, parse_style

logger = structlog.get_logger(__name__)

PRICE_VOCABULARY = re.compile(r"price|fiyat|amount|cost|tutar", re.IGNORECASE)
PRICE_KEYWORD = re.compile(r"price|fiyat|tutar", re.IGNORECASE)
CART_VOCABULARY = re.compile(r"sepet|basket|cart", re.IGNORECASE)

_DEFAULT_FONT_SIZE = 16.0
_TAG_FONT_SIZES = {
    "h1": 32.0,
    "h2": 24.0,
    "h3": 18.72,
    "h4": 16.0,
    "h5": 13.28,
    "h6": 10.72,
    "small": 13.33,
    "big": 19.2,
}
_BOLD_TAGS = {"b", "strong", "h1", "h2", "h3", "h4", "h5", "h6", "th"}
_NAMED_WEIGHTS = {"normal": 400, "bold": 700, "bolder": 700, "lighter": 300}
_LENGTH = re.compile(r"^(-?\d+(?:\.\d+)?)(px|pt|em|rem|%)?$")


class Candidate(NamedTuple):
    """One price-looking element and its layout estimates."""
    price: float
    currency: str | None
    element: Tag
    font_size: float
    font_weight: int
    area: float
    y_position: float
    x_position: float
    width: float
    has_currency_symbol: bool
    has_price_keyword: bool
    text: str
    order: int
    score: float = 0.0


def _attr_text(tag: Tag, name: str) -> str:
    value = tag.get(name)
    if isinstance(value, list):
        return " ".join(value)
    return value or ""


def _identity(tag: Tag) -> str:
    """Class and id values joined for vocabulary matching."""
    return f"{_attr_text(tag, 'class')} {_attr_text(tag, 'id')}"


def _is_price_container(tag: Tag) -> bool:
    if PRICE_VOCABULARY.search(_identity(tag)):
        return True
    if PRICE_VOCABULARY.search(_attr_text(tag, "itemprop")):
        return True
    return any(PRICE_VOCABULARY.search(name) for name in tag.attrs)


def _in_cart_context(tag: Tag) -> bool:
    if CART_VOCABULARY.search(_identity(tag)):
        return True
    return any(
        CART_VOCABULARY.search(_identity(ancestor))
        for ancestor in tag.parents
        if not isinstance(ancestor, BeautifulSoup)
    )


def _parse_length(value: str | None, base: float = _DEFAULT_FONT_SIZE) -> float | None:
    if not value:
        return None
    match = _LENGTH.match(value.strip().lower())
    if match is None:
        return None
    number = float(match.group(1))
    unit = match.group(2) or "px"
    if unit == "pt":
        return number * 4 / 3
    if unit in ("em", "rem"):
        return number * base
    if unit == "%":
        return number / 100 * base
    return number


def _numeric_attr(tag: Tag, name: str) -> float | None:
    try:
        return float(_attr_text(tag, name))
    except ValueError:
        return None


def _font_size(tag: Tag) -> float:
    for node in [tag, *tag.parents]:
        if isinstance(node, BeautifulSoup):
            break
        size = _parse_length(parse_style(node).get("font-size"))
        if size is None:
            size = _numeric_attr(node, "data-font-size")
        if size is None:
            size = _TAG_FONT_SIZES.get(node.name)
        if size is not None:
            return size
    return _DEFAULT_FONT_SIZE


def _font_weight(tag: Tag) -> int:
    for node in [tag, *tag.parents]:
        if isinstance(node, BeautifulSoup):
            break
        declared = parse_style(node).get("font-weight")
        if declared:
            if declared in _NAMED_WEIGHTS:
                return _NAMED_WEIGHTS[declared]
            if declared.isdigit():
                return int(declared)
        if node.name in _BOLD_TAGS:
            return 700
    return 400


def _is_centered(tag: Tag) -> bool:
    for node in [tag, *tag.parents]:
        if isinstance(node, BeautifulSoup):
            break
        align = parse_style(node).get("text-align")
        if align:
            return align == "center"
    return False


def _has_own_text(tag: Tag) -> bool:
    return any(
        isinstance(child, NavigableString) and child.strip()
        for child in tag.children
    )


def _line_index(soup: BeautifulSoup) -> dict[int, int]:
    """Estimated text line for each text-bearing element, in document order."""
    lines: dict[int, int] = {}
    line = 0
    for tag in soup.find_all(True):
        if _has_own_text(tag):
            lines[id(tag)] = line
            line += 1
    return lines


def _line_of(tag: Tag, lines: dict[int, int]) -> int:
    if id(tag) in lines:
        return lines[id(tag)]
    for descendant in tag.find_all(True):
        if id(descendant) in lines:
            return lines[id(descendant)]
    return len(lines)


def _build_candidate(
    tag: Tag,
    text: str,
    parsed: normalizer.ParsedPrice,
    lines: dict[int, int],
    order: int,
) -> Candidate:
    style = parse_style(tag)
    font_size = _font_size(tag)

    width = _parse_length(style.get("width"), font_size) or _numeric_attr(tag, "data-width")
    height = _parse_length(style.get("height"), font_size) or _numeric_attr(tag, "data-height")
    if width is None:
        width = len(text) * font_size * 0.6
    if height is None:
        height = font_size * 1.2

    y = _parse_length(style.get("top"), font_size)
    if y is None:
        y = _numeric_attr(tag, "data-y")
    if y is None:
        y = _line_of(tag, lines) * settings.ESTIMATED_LINE_HEIGHT

    x = _parse_length(style.get("left"), font_size)
    if x is None:
        x = _numeric_attr(tag, "data-x")
    if x is None:
        x = max(0.0, (settings.VIEWPORT_WIDTH - width) / 2) if _is_centered(tag) else 0.0

    keyword_sources = [tag] if tag.parent is None else [tag, tag.parent]
    has_keyword = any(
        PRICE_KEYWORD.search(f"{_identity(node)} {_attr_text(node, 'itemprop')}")
        for node in keyword_sources
        if isinstance(node, Tag) and not isinstance(node, BeautifulSoup)
    )

    return Candidate(
        price=parsed.amount,
        currency=parsed.currency,
        element=tag,
        font_size=font_size,
        font_weight=_font_weight(tag),
        area=width * height,
        y_position=y,
        x_position=x,
        width=width,
        has_currency_symbol=parsed.has_currency,
        has_price_keyword=has_keyword,
        text=text,
        order=order,
    )


def _evaluate(tag: Tag) -> tuple[str, normalizer.ParsedPrice] | None:
    if not is_visible(tag):
        return None
    text = element_text(tag)
    if not settings.SCAN_MIN_TEXT_LENGTH <= len(text) <= settings.SCAN_MAX_TEXT_LENGTH:
        return None
    if CART_VOCABULARY.search(text):
        return None
    parsed = normalizer.parse(text)
    if parsed is None:
        return None
    if not settings.SCAN_MIN_PRICE <= parsed.amount <= settings.SCAN_MAX_PRICE:
        return None
    return text, parsed


def scan(soup: BeautifulSoup) -> list[Candidate]:
    """
    Find price candidates in document order.

    Containers are elements whose class, id, itemprop or attribute names use
    price vocabulary. Each container and its direct leaf children are
    evaluated; containers with too many children are skipped. Anything in a
    cart/basket context is ignored.

    Returns:
        At most SCAN_MAX_CANDIDATES candidates, unranked.
    """
    lines = _line_index(soup)
    candidates: list[Candidate] = []
    seen: set[int] = set()

    for container in soup.find_all(_is_price_container):
        if len(candidates) >= settings.SCAN_MAX_CANDIDATES:
            break
        if _in_cart_context(container):
            continue

        children = [child for child in container.children if isinstance(child, Tag)]
        if len(children) > settings.SCAN_MAX_CHILDREN:
            continue

        leaves = [child for child in children if child.find(True) is None]
        for tag in [container, *leaves]:
            if len(candidates) >= settings.SCAN_MAX_CANDIDATES:
                break
            if id(tag) in seen:
                continue
            seen.add(id(tag))
            if tag is not container and CART_VOCABULARY.search(_identity(tag)):
                continue

            evaluated = _evaluate(tag)
            if evaluated is None:
                continue
            text, parsed = evaluated
            candidates.append(_build_candidate(tag, text, parsed, lines, len(candidates)))

    logger.debug("scan_complete", candidates=len(candidates), source="scanner")
    return candidates
