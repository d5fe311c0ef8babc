"""
Tests for the page fetcher.

All HTTP traffic is mocked with respx. Covers caching, request coalescing,
error mapping (NetworkError vs ExtractionError) and client ownership.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest
import respx

from factories import ManualClock, jsonld_page
from pricewatch.errors import ExtractionError, NetworkError
from pricewatch.extraction.pipeline import ExtractionPipeline
from pricewatch.fetch.cache import TTLCache
from pricewatch.fetch.fetcher import PriceFetcher, default_headers

URL = "https://shop.example.com/p/1"
NO_PRICE_PAGE = "<html><head><title>About</title></head><body><p>Nothing for sale on this page.</p></body></html>"


@pytest.fixture
def fetch_cache(clock: ManualClock) -> TTLCache:
    return TTLCache(default_ttl=300.0, max_size=100, clock=clock, name="fetch")


@pytest.fixture
def fetcher(mock_async_http_client: httpx.AsyncClient, fetch_cache: TTLCache) -> PriceFetcher:
    return PriceFetcher(ExtractionPipeline(), fetch_cache, client=mock_async_http_client)


class TestFetchPrice:
    @pytest.mark.asyncio
    async def test_fetch_extracts_price(self, fetcher: PriceFetcher) -> None:
        respx.get(URL).mock(return_value=httpx.Response(200, text=jsonld_page()))
        result = await fetcher.fetch_price(URL)
        assert result.price == pytest.approx(849.90)
        assert result.url == URL

    @pytest.mark.asyncio
    async def test_second_fetch_served_from_cache(self, fetcher: PriceFetcher) -> None:
        route = respx.get(URL).mock(return_value=httpx.Response(200, text=jsonld_page()))
        await fetcher.fetch_price(URL)
        await fetcher.fetch_price(URL)
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_cache_expiry_refetches(
        self, fetcher: PriceFetcher, clock: ManualClock
    ) -> None:
        route = respx.get(URL).mock(return_value=httpx.Response(200, text=jsonld_page()))
        await fetcher.fetch_price(URL)
        clock.advance(301)
        await fetcher.fetch_price(URL)
        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_requests_coalesce(self, fetcher: PriceFetcher) -> None:
        """Simultaneous callers for one URL share a single HTTP request."""
        route = respx.get(URL).mock(return_value=httpx.Response(200, text=jsonld_page()))
        first, second = await asyncio.gather(fetcher.fetch_price(URL), fetcher.fetch_price(URL))
        assert route.call_count == 1
        assert first.price == second.price
        assert fetcher.in_flight == 0


class TestFetchErrors:
    @pytest.mark.asyncio
    async def test_http_error_status(self, fetcher: PriceFetcher) -> None:
        respx.get(URL).mock(return_value=httpx.Response(404, text="Not Found" * 20))
        with pytest.raises(NetworkError) as exc_info:
            await fetcher.fetch_price(URL)
        assert exc_info.value.context["status_code"] == 404
        assert fetcher.in_flight == 0

    @pytest.mark.asyncio
    async def test_short_body(self, fetcher: PriceFetcher) -> None:
        respx.get(URL).mock(return_value=httpx.Response(200, text="<html></html>"))
        with pytest.raises(NetworkError):
            await fetcher.fetch_price(URL)

    @pytest.mark.asyncio
    async def test_transport_error(self, fetcher: PriceFetcher) -> None:
        respx.get(URL).mock(side_effect=httpx.ConnectError("connection refused"))
        with pytest.raises(NetworkError):
            await fetcher.fetch_price(URL)

    @pytest.mark.asyncio
    async def test_page_without_price(self, fetcher: PriceFetcher) -> None:
        respx.get(URL).mock(return_value=httpx.Response(200, text=NO_PRICE_PAGE))
        with pytest.raises(ExtractionError):
            await fetcher.fetch_price(URL)

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, fetcher: PriceFetcher) -> None:
        """A failed fetch leaves nothing behind; the next call retries."""
        respx.get(URL).mock(
            side_effect=[
                httpx.Response(500, text="x" * 100),
                httpx.Response(200, text=jsonld_page()),
            ]
        )
        with pytest.raises(NetworkError):
            await fetcher.fetch_price(URL)
        result = await fetcher.fetch_price(URL)
        assert result.price == pytest.approx(849.90)

    @pytest.mark.asyncio
    async def test_hard_timeout(self, fetch_cache: TTLCache) -> None:
        """Work exceeding the timeout becomes a NetworkError."""
        fetcher = PriceFetcher(ExtractionPipeline(), fetch_cache, client=httpx.AsyncClient(), timeout=0.01)

        async def slow(url: str):
            await asyncio.sleep(1)

        fetcher._fetch_and_extract = slow
        with pytest.raises(NetworkError):
            await fetcher.fetch_price(URL)
        assert fetcher.in_flight == 0
        await fetcher._client.aclose()


class TestClientLifecycle:
    def test_default_headers(self) -> None:
        headers = default_headers()
        assert "Mozilla" in headers["User-Agent"]
        assert headers["Accept-Language"].startswith("tr-TR")

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, fetch_cache: TTLCache) -> None:
        client = httpx.AsyncClient()
        fetcher = PriceFetcher(ExtractionPipeline(), fetch_cache, client=client)
        await fetcher.aclose()
        assert client.is_closed is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_closed_on_exit(self, fetch_cache: TTLCache) -> None:
        async with PriceFetcher(ExtractionPipeline(), fetch_cache) as fetcher:
            client = fetcher._client
            assert client is not None
        assert client.is_closed is True
