"""
PriceWatch — Extraction Strategies

Each strategy is a plain function (soup, url) -> ExtractionResult | None.
The pipeline tries them in priority order and keeps the first result:

    0. custom selector   (0.90)  user-picked CSS selector for the domain
    1. site rule         (0.95)  per-retailer selector lists (sites.py)
    2. structured data   (0.85)  JSON-LD Product records, then microdata
    3. meta tags         (0.75)  product:price:amount / og:price:amount
    4. heuristic         (0.60)  scanner -> scorer, best candidate

The custom selector strategy needs the selector map, so the pipeline binds
it with functools.partial before running.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable

import structlog
from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from pricewatch.config import ExtractionMethod, settings
from pricewatch.extraction import ExtractionResult, normalizer, scanner, scorer
from pricewatch.extraction.document import (
    clean_product_name,
    element_text,
    get_domain,
    get_site_name,
    is_valid_name,
    is_valid_price,
    page_title,
    sanitize_image_url,
)
from pricewatch.extraction.sites import (
    GENERIC_NAME_SELECTORS,
    SelectorSpec,
    extract_match,
    extract_value,
    get_site_rule,
)
from pricewatch.utils.currency import currency_from_url, sanitize_currency

logger = structlog.get_logger(__name__)

Strategy = Callable[[BeautifulSoup, str], ExtractionResult | None]

_TITLE_SEPARATORS = re.compile(r"\s+[|\-–—:»›]\s+")


def _price_from_text(text: str | None) -> tuple[float, str | None] | None:
    """Amount plus explicit currency (if any) from displayed element text."""
    if not text:
        return None
    parsed = normalizer.parse(text.strip()[:30])
    if parsed is None or not is_valid_price(parsed.amount):
        return None
    return parsed.amount, parsed.currency


def _price_from_value(value: str | None) -> tuple[float, str | None] | None:
    """Amount plus explicit currency (if any) from a machine value such as content='1299.00'."""
    if not value:
        return None
    amount = normalizer.parse_amount(value)
    if not is_valid_price(amount):
        return None
    parsed = normalizer.parse(value.strip()[:30])
    return amount, parsed.currency if parsed is not None else None


def _element_price(element: Any) -> tuple[float, str | None] | None:
    content = element.get("content")
    if isinstance(content, str) and content.strip():
        return _price_from_value(content)
    return _price_from_text(element_text(element))


def _selector_price(
    soup: BeautifulSoup,
    specs: tuple[SelectorSpec, ...],
) -> tuple[float, str | None] | None:
    match = extract_match(soup, specs)
    if match is None:
        return None
    value, spec = match
    if spec.attr == "text":
        return _price_from_text(value)
    return _price_from_value(value)


def _title_name(soup: BeautifulSoup) -> str | None:
    """First meaningful segment of the page title."""
    title = page_title(soup)
    if not title:
        return None
    for segment in _TITLE_SEPARATORS.split(title):
        if is_valid_name(segment):
            return segment.strip()
    return title if is_valid_name(title) else None


# ---------------------------------------------------------------------------
# 0. Custom selector
# ---------------------------------------------------------------------------

def extract_with_custom_selector(
    soup: BeautifulSoup,
    url: str,
    *,
    selectors: dict[str, Any],
) -> ExtractionResult | None:
    """Read the price from the element the user picked for this domain."""
    domain = get_domain(url)
    entry = selectors.get(domain) if domain else None
    if not isinstance(entry, dict) or not entry.get("selector"):
        return None

    try:
        element = soup.select_one(entry["selector"])
    except SelectorSyntaxError as e:
        logger.warning(
            "custom_selector_invalid",
            domain=domain,
            selector=entry["selector"],
            error=str(e),
            source="strategies",
        )
        return None
    if element is None:
        logger.debug("custom_selector_no_match", domain=domain, source="strategies")
        return None

    priced = _element_price(element)
    if priced is None:
        return None
    price, currency = priced

    name = clean_product_name(_first_heading(soup) or _title_name(soup))
    if not is_valid_name(name):
        return None

    return ExtractionResult(
        name=name,
        price=price,
        currency=currency or currency_from_url(url),
        url=url,
        site=get_site_name(url),
        confidence=settings.CONFIDENCE_CUSTOM_SELECTOR,
        method=ExtractionMethod.CUSTOM_SELECTOR,
    )


# ---------------------------------------------------------------------------
# 1. Site rule
# ---------------------------------------------------------------------------

def extract_with_site_rule(soup: BeautifulSoup, url: str) -> ExtractionResult | None:
    """Apply the retailer's selector lists; None when no rule covers the URL."""
    rule = get_site_rule(url)
    if rule is None:
        return None

    price: float | None = None
    currency: str | None = None
    if rule.price_fn is not None:
        price = rule.price_fn(soup)
        if not is_valid_price(price):
            price = None
    if price is None:
        priced = _selector_price(soup, rule.price)
        if priced is None:
            logger.debug("site_rule_no_price", site=rule.site_name, source="strategies")
            return None
        price, currency = priced

    name = clean_product_name(extract_value(soup, rule.name))
    if not is_valid_name(name):
        logger.debug("site_rule_no_name", site=rule.site_name, source="strategies")
        return None

    previous_price = None
    if rule.previous_price:
        previous = _selector_price(soup, rule.previous_price)
        if previous is not None:
            previous_price = previous[0]

    image = None
    if rule.image:
        image = sanitize_image_url(extract_value(soup, rule.image), url)

    return ExtractionResult(
        name=name,
        price=price,
        previous_price=previous_price,
        currency=currency or rule.currency,
        image=image,
        url=url,
        site=rule.site_name,
        confidence=settings.CONFIDENCE_SITE_CONFIG,
        method=ExtractionMethod.SITE_CONFIG,
    )


# ---------------------------------------------------------------------------
# 2. Structured data
# ---------------------------------------------------------------------------

def _is_product(item: dict[str, Any]) -> bool:
    kind = item.get("@type")
    if isinstance(kind, list):
        return "Product" in kind
    return kind == "Product"


def _jsonld_items(data: Any) -> list[dict[str, Any]]:
    """Flatten a JSON-LD payload (object, array or @graph) into records."""
    if isinstance(data, list):
        items = data[: settings.JSONLD_MAX_ITEMS]
    elif isinstance(data, dict):
        graph = data.get("@graph")
        items = graph[: settings.JSONLD_MAX_ITEMS] if isinstance(graph, list) else [data]
    else:
        return []
    return [item for item in items if isinstance(item, dict)]


def _first_image(value: Any) -> str | None:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("url") or value.get("contentUrl")
    return value if isinstance(value, str) else None


def _product_from_jsonld(item: dict[str, Any], url: str) -> ExtractionResult | None:
    offers = item.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    if not isinstance(offers, dict):
        return None

    raw_price = offers.get("price")
    if raw_price is None:
        raw_price = offers.get("lowPrice")
    price = normalizer.parse_amount(raw_price)
    if not is_valid_price(price):
        return None

    name = clean_product_name(item.get("name") if isinstance(item.get("name"), str) else None)
    if not is_valid_name(name):
        return None

    return ExtractionResult(
        name=name,
        price=price,
        currency=sanitize_currency(offers.get("priceCurrency"), default=currency_from_url(url)),
        image=sanitize_image_url(_first_image(item.get("image")), url),
        url=url,
        site=get_site_name(url),
        confidence=settings.CONFIDENCE_STRUCTURED_DATA,
        method=ExtractionMethod.STRUCTURED_DATA,
    )


def _from_jsonld(soup: BeautifulSoup, url: str) -> ExtractionResult | None:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        content = script.string or script.get_text()
        if not content or len(content) > settings.JSONLD_MAX_BYTES:
            continue
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.debug("jsonld_parse_failed", url=url, error=str(e), source="strategies")
            continue

        for item in _jsonld_items(data):
            if not _is_product(item):
                continue
            result = _product_from_jsonld(item, url)
            if result is not None:
                return result
    return None


def _itemprop_value(soup: BeautifulSoup, prop: str) -> str | None:
    element = soup.find(attrs={"itemprop": prop})
    if element is None:
        return None
    value = element.get("content") or element_text(element)
    return value.strip() if isinstance(value, str) and value.strip() else None


def _from_microdata(soup: BeautifulSoup, url: str) -> ExtractionResult | None:
    price_tag = soup.find(attrs={"itemprop": "price"})
    priced = _element_price(price_tag) if price_tag is not None else None
    if priced is None:
        return None
    price, text_currency = priced

    name = clean_product_name(_itemprop_value(soup, "name"))
    if not is_valid_name(name):
        return None

    declared = _itemprop_value(soup, "priceCurrency")
    fallback = text_currency or currency_from_url(url)
    image_tag = soup.find(attrs={"itemprop": "image"})
    image = None
    if image_tag is not None:
        image = sanitize_image_url(image_tag.get("content") or image_tag.get("src"), url)

    return ExtractionResult(
        name=name,
        price=price,
        currency=sanitize_currency(declared, default=fallback) if declared else fallback,
        image=image,
        url=url,
        site=get_site_name(url),
        confidence=settings.CONFIDENCE_STRUCTURED_DATA,
        method=ExtractionMethod.STRUCTURED_DATA,
    )


def extract_from_structured_data(soup: BeautifulSoup, url: str) -> ExtractionResult | None:
    """JSON-LD Product records first, schema.org microdata second."""
    return _from_jsonld(soup, url) or _from_microdata(soup, url)


# ---------------------------------------------------------------------------
# 3. Meta tags
# ---------------------------------------------------------------------------

def _meta_content(soup: BeautifulSoup, *keys: str) -> str | None:
    for key in keys:
        for attr in ("property", "name", "itemprop"):
            tag = soup.find("meta", attrs={attr: key})
            if tag is None:
                continue
            content = tag.get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
    return None


def extract_from_meta_tags(soup: BeautifulSoup, url: str) -> ExtractionResult | None:
    """Open Graph / product meta fields, then a generic `price` meta."""
    raw_price = _meta_content(soup, "product:price:amount", "og:price:amount")
    if raw_price is None:
        raw_price = _meta_content(soup, "price")
    priced = _price_from_value(raw_price)
    if priced is None:
        return None
    price, text_currency = priced

    name = clean_product_name(_meta_content(soup, "og:title") or _title_name(soup))
    if not is_valid_name(name):
        return None

    declared = _meta_content(soup, "product:price:currency", "og:price:currency")
    fallback = text_currency or currency_from_url(url)

    return ExtractionResult(
        name=name,
        price=price,
        currency=sanitize_currency(declared, default=fallback) if declared else fallback,
        image=sanitize_image_url(_meta_content(soup, "og:image"), url),
        url=url,
        site=_meta_content(soup, "og:site_name") or get_site_name(url),
        confidence=settings.CONFIDENCE_META_TAGS,
        method=ExtractionMethod.META_TAGS,
    )


# ---------------------------------------------------------------------------
# 4. Heuristic
# ---------------------------------------------------------------------------

def _first_heading(soup: BeautifulSoup) -> str | None:
    """First product-like h1 whose text length is plausible for a name."""
    seen: set[int] = set()
    for spec in GENERIC_NAME_SELECTORS:
        for element in soup.select(spec.selector):
            if id(element) in seen:
                continue
            seen.add(id(element))
            text = element_text(element)
            if settings.HEURISTIC_NAME_MIN_LENGTH <= len(text) <= settings.HEURISTIC_NAME_MAX_LENGTH:
                return text
    return None


def extract_with_heuristics(soup: BeautifulSoup, url: str) -> ExtractionResult | None:
    """Scan, score, take the best candidate."""
    ranked = scorer.score(scanner.scan(soup))
    if not ranked:
        logger.debug("heuristic_no_candidates", url=url, source="strategies")
        return None
    best = ranked[0]

    name = clean_product_name(_first_heading(soup) or _title_name(soup))
    if not is_valid_name(name):
        logger.debug("heuristic_no_name", url=url, source="strategies")
        return None

    logger.debug(
        "heuristic_best_candidate",
        price=best.price,
        score=round(best.score, 2),
        text=best.text,
        source="strategies",
    )
    return ExtractionResult(
        name=name,
        price=best.price,
        currency=best.currency or currency_from_url(url),
        url=url,
        site=get_site_name(url),
        confidence=settings.CONFIDENCE_HEURISTIC,
        method=ExtractionMethod.HEURISTIC,
    )
