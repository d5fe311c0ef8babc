"""
PriceWatch — Site Rule Table

Per-domain selector lists for the retailers the engine knows by name.
Each field is an ordered list of (selector, attribute) pairs; the first
selector yielding a non-empty value wins. attr="text" reads the element's
text content, anything else reads that attribute.

A rule matches a URL when the hostname equals the rule's domain or is a
subdomain of it. Longer domains are tried first so amazon.com.tr never
falls through to amazon.com.
"""

from __future__ import annotations

import re
from typing import Callable, NamedTuple

import structlog
from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from pricewatch.extraction.document import element_text, get_domain

logger = structlog.get_logger(__name__)


class SelectorSpec(NamedTuple):
    selector: str
    attr: str = "text"


class SiteRule(NamedTuple):
    """Extraction rule for one retailer."""
    site_name: str
    currency: str
    price: tuple[SelectorSpec, ...]
    name: tuple[SelectorSpec, ...]
    previous_price: tuple[SelectorSpec, ...] = ()
    image: tuple[SelectorSpec, ...] = ()
    price_fn: Callable[[BeautifulSoup], float | None] | None = None


def _amazon_price(soup: BeautifulSoup) -> float | None:
    """Amazon splits the price into whole and fraction spans."""
    whole = soup.select_one("span.a-price-whole")
    if whole is None:
        return None
    whole_digits = re.sub(r"\D", "", element_text(whole))
    if not whole_digits:
        return None

    fraction = whole.find_next_sibling("span", class_="a-price-fraction")
    fraction_digits = re.sub(r"\D", "", element_text(fraction)) if fraction else ""
    return float(f"{whole_digits}.{fraction_digits or '0'}")


S = SelectorSpec

SITE_RULES: dict[str, SiteRule] = {
    # --- Turkish retailers ---
    "hepsiburada.com": SiteRule(
        site_name="Hepsiburada",
        currency="TRY",
        price=(
            S('[data-test-id="price-current-price"]', "content"),
            S(".checkout-price"),
            S('[itemprop="price"]', "content"),
            S(".price-value"),
            S("#offering-price"),
            S(".product-price"),
        ),
        previous_price=(
            S('[data-test-id="price-old-price"]', "content"),
            S(".prev-price"),
            S(".old-price"),
        ),
        name=(
            S('[data-test-id="product-name"]'),
            S('h1[itemprop="name"]'),
            S(".product-name"),
            S("h1"),
        ),
        image=(
            S('[data-test-id="product-image"]', "src"),
            S('img[itemprop="image"]', "src"),
            S(".product-image img", "src"),
        ),
    ),
    "trendyol.com": SiteRule(
        site_name="Trendyol",
        currency="TRY",
        price=(
            S('[data-test-id="current-price"]'),
            S(".prc-dsc"),
            S(".prc-slg"),
            S('[class*="price-box"] span[class*="prc"]'),
            S('span[itemprop="price"]', "content"),
        ),
        previous_price=(
            S('[data-test-id="old-price"]'),
            S(".prc-org"),
            S(".original-price"),
        ),
        name=(
            S("h1.pr-new-br"),
            S('h1[class*="product-name"]'),
            S("h1"),
        ),
        image=(
            S(".product-image img", "src"),
            S('img[alt*="ürün"]', "src"),
        ),
    ),
    "n11.com": SiteRule(
        site_name="N11",
        currency="TRY",
        price=(
            S(".newPrice ins"),
            S(".priceContainer ins"),
            S(".newPrice"),
            S('[itemprop="price"]', "content"),
            S("#newPrice"),
        ),
        previous_price=(S(".oldPrice"), S(".priceContainer del")),
        name=(S('h1[itemprop="name"]'), S(".proName"), S("h1.productName")),
    ),
    "amazon.com.tr": SiteRule(
        site_name="Amazon TR",
        currency="TRY",
        price=(
            S("#priceblock_ourprice"),
            S("#priceblock_dealprice"),
            S(".a-price .a-offscreen"),
            S("[data-asin-price]", "data-asin-price"),
        ),
        previous_price=(
            S(".a-text-price span.a-offscreen"),
            S("span.a-price.a-text-price span"),
        ),
        name=(S("#productTitle"), S("h1.a-size-large")),
        image=(S("#landingImage", "src"), S("#imgBlkFront", "src")),
        price_fn=_amazon_price,
    ),
    "ciceksepeti.com": SiteRule(
        site_name="Çiçek Sepeti",
        currency="TRY",
        price=(
            S(".product-price__final"),
            S('[data-testid="product-price"]'),
            S(".price-value"),
        ),
        previous_price=(S(".product-price__old"), S(".old-price")),
        name=(S('h1[data-testid="product-title"]'), S(".product-title")),
    ),
    "defacto.com.tr": SiteRule(
        site_name="DeFacto",
        currency="TRY",
        price=(
            S(".product-price__sale"),
            S(".discountedPrice"),
            S('[data-testid="product-price"]'),
        ),
        previous_price=(S(".product-price__original"), S(".originalPrice")),
        name=(S("h1.product-name"), S('[data-testid="product-name"]')),
    ),
    "lcwaikiki.com": SiteRule(
        site_name="LC Waikiki",
        currency="TRY",
        price=(
            S(".product-price__new"),
            S(".product-price .price"),
            S("[data-price]", "data-price"),
        ),
        previous_price=(S(".product-price__old"),),
        name=(S("h1.product-name"),),
    ),
    "koton.com": SiteRule(
        site_name="Koton",
        currency="TRY",
        price=(
            S(".product-detail-price__discounted"),
            S(".price-discounted"),
            S(".product-price"),
        ),
        previous_price=(S(".product-detail-price__original"), S(".price-original")),
        name=(S("h1.product-name"),),
    ),
    "flo.com.tr": SiteRule(
        site_name="FLO",
        currency="TRY",
        price=(S(".product-price-discounted"), S(".product-price")),
        previous_price=(S(".product-price-original"),),
        name=(S("h1.product-title"),),
    ),
    "teknosa.com": SiteRule(
        site_name="Teknosa",
        currency="TRY",
        price=(
            S(".product-price"),
            S('[data-testid="product-price"]'),
            S(".prd-prc"),
        ),
        previous_price=(S(".old-price"),),
        name=(S("h1.product-name"),),
    ),
    "mediamarkt.com.tr": SiteRule(
        site_name="MediaMarkt",
        currency="TRY",
        price=(S('[data-test="product-price"]'), S(".product-price")),
        previous_price=(S(".old-price"),),
        name=(S('h1[data-test="product-name"]'),),
    ),
    "vatanbilgisayar.com": SiteRule(
        site_name="Vatan Bilgisayar",
        currency="TRY",
        price=(S(".product-list__price"), S("#product-price")),
        previous_price=(S(".product-list__old-price"),),
        name=(S("h1.product-list__product-name"),),
    ),
    "a101.com.tr": SiteRule(
        site_name="A101",
        currency="TRY",
        price=(S(".current-price"), S(".product-price")),
        previous_price=(S(".old-price"),),
        name=(S("h1.product-name"),),
    ),
    "gratis.com": SiteRule(
        site_name="Gratis",
        currency="TRY",
        price=(S(".product-detail__price--current"), S(".price-current")),
        previous_price=(S(".product-detail__price--old"),),
        name=(S("h1.product-detail__name"),),
    ),
    "decathlon.com.tr": SiteRule(
        site_name="Decathlon",
        currency="TRY",
        price=(S('[data-testid="product-price"]'), S(".product-price")),
        name=(S('h1[data-testid="product-title"]'),),
    ),
    # --- International retailers ---
    "amazon.com": SiteRule(
        site_name="Amazon",
        currency="USD",
        price=(
            S("#priceblock_ourprice"),
            S("#priceblock_dealprice"),
            S(".a-price .a-offscreen"),
        ),
        previous_price=(S(".a-text-price span.a-offscreen"),),
        name=(S("#productTitle"),),
        image=(S("#landingImage", "src"),),
        price_fn=_amazon_price,
    ),
    "ebay.com": SiteRule(
        site_name="eBay",
        currency="USD",
        price=(
            S('[itemprop="price"]', "content"),
            S(".x-price-primary span"),
            S("#prcIsum"),
        ),
        name=(S("h1.x-item-title__mainTitle"),),
    ),
    "walmart.com": SiteRule(
        site_name="Walmart",
        currency="USD",
        price=(
            S('[itemprop="price"]', "content"),
            S('span[data-testid="price-wrap"]'),
        ),
        name=(S('h1[itemprop="name"]'),),
    ),
    "etsy.com": SiteRule(
        site_name="Etsy",
        currency="USD",
        price=(S('[data-buy-box-region="price"]'), S(".wt-text-title-03")),
        name=(S("h1"),),
    ),
    "bestbuy.com": SiteRule(
        site_name="Best Buy",
        currency="USD",
        price=(
            S('[data-testid="customer-price"]'),
            S(".priceView-customer-price span"),
        ),
        name=(S("h1.heading-5"),),
    ),
}

# Heuristic name lookup; most specific first.
GENERIC_NAME_SELECTORS: tuple[SelectorSpec, ...] = (
    S('h1[itemprop="name"]'),
    S('h1[class*="product"]'),
    S('h1[class*="title"]'),
    S('h1[class*="name"]'),
    S('[class*="product"][class*="name"] h1'),
    S("h1"),
)

_DOMAINS_LONGEST_FIRST = sorted(SITE_RULES, key=len, reverse=True)


def get_site_rule(url: str) -> SiteRule | None:
    """Rule for the URL's domain, or None for retailers without one."""
    domain = get_domain(url)
    if not domain:
        return None
    for key in _DOMAINS_LONGEST_FIRST:
        if domain == key or domain.endswith("." + key):
            return SITE_RULES[key]
    return None


def extract_value(soup: BeautifulSoup, specs: tuple[SelectorSpec, ...]) -> str | None:
    """First non-empty value produced by the selector list."""
    match = extract_match(soup, specs)
    return match[0] if match is not None else None


def extract_match(
    soup: BeautifulSoup,
    specs: tuple[SelectorSpec, ...],
) -> tuple[str, SelectorSpec] | None:
    """First non-empty value plus the selector that produced it."""
    for spec in specs:
        try:
            elements = soup.select(spec.selector)
        except SelectorSyntaxError as e:
            logger.debug(
                "site_selector_invalid",
                selector=spec.selector,
                error=str(e),
                source="sites",
            )
            continue

        for element in elements:
            if spec.attr == "text":
                value = element_text(element)
            else:
                raw = element.get(spec.attr)
                value = " ".join(raw) if isinstance(raw, list) else (raw or "")
            value = value.strip()
            if value:
                return value, spec
    return None
