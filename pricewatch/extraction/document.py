"""
PriceWatch — Document Helpers

Parsing and small DOM utilities shared by the extraction strategies.
Documents are BeautifulSoup trees built with the lxml parser; page scripts
are never executed, so everything here works on already-resolved markup.
"""

from __future__ import annotations

import math
import re
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from pricewatch.config import settings

_HIDDEN_TAGS = {"script", "style", "noscript", "template", "head", "title", "meta", "link"}

# Second-level labels that sit in front of a country code ("amazon.com.tr").
_SECOND_LEVEL = {"com", "co", "org", "net", "gov", "edu", "ac", "gen", "web"}


def parse_document(html: str) -> BeautifulSoup:
    """Build a searchable tree from raw page markup."""
    return BeautifulSoup(html, "lxml")


def parse_style(tag: Tag) -> dict[str, str]:
    """Inline `style` declarations as a lowercase {property: value} dict."""
    raw = tag.get("style")
    if not raw or not isinstance(raw, str):
        return {}
    declarations: dict[str, str] = {}
    for part in raw.split(";"):
        prop, sep, value = part.partition(":")
        if sep:
            declarations[prop.strip().lower()] = value.strip().lower()
    return declarations


def _hides_itself(tag: Tag) -> bool:
    if tag.name in _HIDDEN_TAGS:
        return True
    if tag.has_attr("hidden"):
        return True
    if str(tag.get("aria-hidden", "")).lower() == "true":
        return True

    style = parse_style(tag)
    if style.get("display", "").startswith("none"):
        return True
    if style.get("visibility", "").startswith(("hidden", "collapse")):
        return True
    opacity = style.get("opacity")
    if opacity is not None:
        try:
            if float(opacity.rstrip("%").split()[0]) == 0:
                return True
        except (ValueError, IndexError):
            pass
    return False


def is_visible(tag: Tag) -> bool:
    """False when the tag or any ancestor is hidden by attribute or inline style."""
    node: Tag | None = tag
    while node is not None and not isinstance(node, BeautifulSoup):
        if _hides_itself(node):
            return False
        node = node.parent
    return True


def element_text(tag: Tag) -> str:
    """Text content with runs of whitespace collapsed."""
    return " ".join(tag.get_text().split())


def page_title(soup: BeautifulSoup) -> str:
    title = soup.title
    return element_text(title) if title is not None else ""


def get_domain(url: str) -> str:
    """Lowercase hostname without a leading 'www.'; '' for unparseable URLs."""
    try:
        hostname = (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""
    return hostname[4:] if hostname.startswith("www.") else hostname


def get_site_name(url: str) -> str:
    """Human-ish site label from the registrable domain ("Hepsiburada")."""
    domain = get_domain(url)
    if not domain:
        return "Unknown"
    parts = domain.split(".")
    if len(parts) >= 3 and parts[-2] in _SECOND_LEVEL:
        main = parts[-3]
    elif len(parts) >= 2:
        main = parts[-2]
    else:
        main = parts[0]
    return main[:1].upper() + main[1:]


def clean_product_name(name: str | None) -> str | None:
    """Collapse whitespace, drop breadcrumb separators, cap the length."""
    if not name or not isinstance(name, str):
        return None
    cleaned = re.sub(r"[|›»<>]", " ", name)
    cleaned = " ".join(cleaned.split())
    return cleaned[: settings.NAME_MAX_LENGTH] or None


def is_valid_name(name: str | None) -> bool:
    return isinstance(name, str) and len(name.strip()) >= settings.NAME_MIN_LENGTH


def is_valid_price(price: float | None) -> bool:
    return (
        isinstance(price, (int, float))
        and not isinstance(price, bool)
        and math.isfinite(price)
        and settings.MIN_PRICE <= price <= settings.MAX_PRICE
    )


def sanitize_image_url(image_url: str | None, base_url: str) -> str | None:
    """Resolve relative image URLs against the page; only http(s) survive."""
    if not image_url or not isinstance(image_url, str):
        return None
    candidate = image_url.strip()
    if not candidate:
        return None
    try:
        resolved = urljoin(base_url, candidate)
        parsed = urlparse(resolved)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return resolved
