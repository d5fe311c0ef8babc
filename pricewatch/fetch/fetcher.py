"""
PriceWatch — Page Fetcher with Coalescing

fetch_price(url) resolves a URL to an ExtractionResult:

    1. fresh TTL cache entry          -> returned as-is
    2. request already in flight      -> await the same task
    3. otherwise GET (hard timeout), run the extraction pipeline,
       validate, cache, return

Failures propagate to the caller and are never cached:
    NetworkError     non-2xx status, body too short, transport error, timeout
    ExtractionError  page fetched but no strategy produced a price

The in-flight map is cleared in a `finally` on every exit path. Lookup and
registration happen with no await in between, so at most one request per
URL is ever open.
"""

from __future__ import annotations

import asyncio
import math
from typing import Any

import httpx
import structlog

from pricewatch.config import settings
from pricewatch.errors import ExtractionError, NetworkError
from pricewatch.extraction import ExtractionResult
from pricewatch.extraction.pipeline import ExtractionPipeline
from pricewatch.fetch.cache import TTLCache

logger = structlog.get_logger(__name__)


def default_headers() -> dict[str, str]:
    return {
        "User-Agent": settings.USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": settings.ACCEPT_LANGUAGE,
        "Cache-Control": "no-cache",
    }


class PriceFetcher:
    """
    Fetches product pages and extracts prices, sharing one cache and one
    in-flight map across every caller.

    Usage:
        async with PriceFetcher(pipeline, cache) as fetcher:
            result = await fetcher.fetch_price(url)
    """

    def __init__(
        self,
        pipeline: ExtractionPipeline,
        cache: TTLCache,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.cache = cache
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS
        self._client = client
        self._owns_client = client is None
        self._in_flight: dict[str, asyncio.Task[ExtractionResult]] = {}

    async def __aenter__(self) -> PriceFetcher:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=default_headers(),
                timeout=self.timeout,
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def fetch_price(self, url: str) -> ExtractionResult:
        """
        Current extraction for `url`, from cache, an in-flight request, or
        a fresh fetch.

        Raises:
            NetworkError: the page could not be fetched.
            ExtractionError: the page had no recognizable price.
        """
        cached = self.cache.get(url)
        if cached is not None:
            logger.debug("fetch_cache_hit", url=url, source="fetcher")
            return cached

        task = self._in_flight.get(url)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_cache(url))
            self._in_flight[url] = task
        else:
            logger.debug("fetch_coalesced", url=url, source="fetcher")

        # shield: one cancelled waiter must not cancel the shared request.
        return await asyncio.shield(task)

    async def _fetch_and_cache(self, url: str) -> ExtractionResult:
        try:
            try:
                result = await asyncio.wait_for(self._fetch_and_extract(url), self.timeout)
            except asyncio.TimeoutError as e:
                raise NetworkError(
                    f"Request timed out after {self.timeout:.0f}s",
                    {"url": url, "timeout": self.timeout},
                ) from e

            self.cache.set(url, result)
            return result
        finally:
            self._in_flight.pop(url, None)

    async def _fetch_and_extract(self, url: str) -> ExtractionResult:
        client = self._ensure_client()
        try:
            response = await client.get(url)
        except httpx.TimeoutException as e:
            raise NetworkError("Request timed out", {"url": url}) from e
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Request failed: {e}",
                {"url": url, "error_type": type(e).__name__},
            ) from e

        if not response.is_success:
            raise NetworkError(
                f"HTTP {response.status_code}",
                {"url": url, "status_code": response.status_code},
            )

        html = response.text
        if len(html) < settings.FETCH_MIN_BODY_LENGTH:
            raise NetworkError(
                "Response body too short",
                {"url": url, "length": len(html)},
            )

        result = self.pipeline.extract(html, url)
        if result is None:
            raise ExtractionError("No price found on page", {"url": url})
        if not math.isfinite(result.price) or result.price <= 0:
            raise ExtractionError(
                "Extracted price is not a positive number",
                {"url": url, "price": result.price},
            )

        logger.info(
            "price_fetched",
            url=url,
            price=result.price,
            currency=result.currency,
            method=result.method.value,
            source="fetcher",
        )
        return result
