"""
PriceWatch — Extraction Pipeline

Runs the strategies in priority order and returns the first usable result.
A strategy that raises is logged and skipped; the next one still runs.

Successful results are kept for a few seconds in a small freshness cache
keyed by URL + page title, so back-to-back extractions of the same page
(e.g. an on-demand check right after a sweep) skip the DOM work.
"""

from __future__ import annotations

import functools
import time
from typing import Any

import structlog
from bs4 import BeautifulSoup

from pricewatch.config import settings
from pricewatch.extraction import ExtractionResult
from pricewatch.extraction.document import is_valid_price, page_title, parse_document
from pricewatch.extraction.strategies import (
    Strategy,
    extract_from_meta_tags,
    extract_from_structured_data,
    extract_with_custom_selector,
    extract_with_heuristics,
    extract_with_site_rule,
)
from pricewatch.fetch.cache import TTLCache

logger = structlog.get_logger(__name__)


class ExtractionPipeline:
    """Ordered strategy runner with a short URL+title result cache."""

    def __init__(
        self,
        custom_selectors: dict[str, Any] | None = None,
        cache: TTLCache | None = None,
    ) -> None:
        self.custom_selectors: dict[str, Any] = dict(custom_selectors or {})
        self.cache = cache or TTLCache(
            default_ttl=settings.EXTRACTION_CACHE_TTL_SECONDS,
            max_size=settings.EXTRACTION_CACHE_MAX_SIZE,
            name="extraction",
        )

    def set_custom_selectors(self, selectors: dict[str, Any] | None) -> None:
        """Replace the domain -> selector map read by the custom strategy."""
        self.custom_selectors = dict(selectors or {})

    def strategies(self) -> list[Strategy]:
        """Strategies in the order they are tried."""
        return [
            functools.partial(extract_with_custom_selector, selectors=self.custom_selectors),
            extract_with_site_rule,
            extract_from_structured_data,
            extract_from_meta_tags,
            extract_with_heuristics,
        ]

    def extract(self, document: BeautifulSoup | str, url: str) -> ExtractionResult | None:
        """
        Extract (name, price, currency) from a page.

        Args:
            document: Parsed soup or raw HTML.
            url: The page URL (drives site rules, TLD currency, image URLs).

        Returns:
            The first strategy result with a valid price, or None.
        """
        soup = parse_document(document) if isinstance(document, str) else document
        cache_key = f"{url}|{page_title(soup)}"

        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("extraction_cache_hit", url=url, source="pipeline")
            return cached

        started = time.perf_counter()
        for strategy in self.strategies():
            strategy_name = getattr(strategy, "func", strategy).__name__
            try:
                result = strategy(soup, url)
            except Exception as e:
                logger.error(
                    "extraction_strategy_failed",
                    url=url,
                    strategy=strategy_name,
                    error=str(e),
                    error_type=type(e).__name__,
                    source="pipeline",
                )
                continue

            if result is None or not is_valid_price(result.price):
                continue

            logger.info(
                "extraction_complete",
                url=url,
                method=result.method.value,
                price=result.price,
                currency=result.currency,
                confidence=result.confidence,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
                source="pipeline",
            )
            self.cache.set(cache_key, result)
            return result

        logger.warning(
            "extraction_no_product",
            url=url,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
            source="pipeline",
        )
        return None
