"""
PriceWatch — Engine

The single object that owns the shared runtime state:

    fetch cache + in-flight map   (PriceFetcher)
    extraction pipeline           (+ its short result cache)
    token bucket                  (rebuilt when rate_limit_per_hour changes)
    retry queue
    tracker settings, repositories, notifier

Sweeps and on-demand checks go through the same Engine so they share the
cache, the coalescer and the rate limiter.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, NamedTuple

import httpx
import structlog

from pricewatch.alerts.evaluator import should_notify_change
from pricewatch.alerts.manager import AlertManager, TriggeredAlert
from pricewatch.config import CheckStatus, Severity, TrackerSettings, settings
from pricewatch.errors import ExtractionError, PriceWatchError, RateLimitError, StorageError
from pricewatch.extraction.pipeline import ExtractionPipeline
from pricewatch.fetch.cache import TTLCache
from pricewatch.fetch.fetcher import PriceFetcher
from pricewatch.fetch.rate_limiter import TokenBucket
from pricewatch.models.product import TrackedProduct
from pricewatch.notify import Notification, Notifier, build_price_change_notification
from pricewatch.notify.log import LogNotifier
from pricewatch.pipeline.retry_queue import RetryQueue
from pricewatch.storage.base import Storage
from pricewatch.storage.repositories import (
    ProductRepository,
    SettingsRepository,
    load_custom_selectors,
)

logger = structlog.get_logger(__name__)

_RESCHEDULE_FIELDS = ("check_interval", "auto_check")


class CheckResult(NamedTuple):
    """Outcome of checking one product."""
    product: TrackedProduct
    changed: bool
    old_price: float
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Engine:
    """
    Shared engine instance.

    Usage:
        engine = Engine(storage)
        await engine.start()
        ...
        await engine.aclose()
    """

    def __init__(
        self,
        storage: Storage,
        notifier: Notifier | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.storage = storage
        self.notifier: Notifier = notifier or LogNotifier()
        self.clock = clock
        self.sleep = sleep

        self.products = ProductRepository(storage)
        self.alerts = AlertManager(storage)
        self.settings_repo = SettingsRepository(storage)
        self.tracker_settings = TrackerSettings()

        self.fetch_cache = TTLCache(
            default_ttl=settings.FETCH_CACHE_TTL_SECONDS,
            max_size=settings.FETCH_CACHE_MAX_SIZE,
            clock=clock,
            name="fetch",
        )
        self.pipeline = ExtractionPipeline(
            cache=TTLCache(
                default_ttl=settings.EXTRACTION_CACHE_TTL_SECONDS,
                max_size=settings.EXTRACTION_CACHE_MAX_SIZE,
                clock=clock,
                name="extraction",
            ),
        )
        self.fetcher = PriceFetcher(self.pipeline, self.fetch_cache, client=client)
        self.limiter = TokenBucket(self.tracker_settings.rate_limit_per_hour, clock=clock)
        self.retry_queue = RetryQueue(storage)

        self._reschedule_hooks: list[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load persisted settings, selectors and the retry queue."""
        self.tracker_settings = await self.settings_repo.load()
        self.limiter = TokenBucket(self.tracker_settings.rate_limit_per_hour, clock=self.clock)
        self.fetch_cache.default_ttl = float(self.tracker_settings.cache_duration)
        await self.refresh_custom_selectors()
        await self.retry_queue.load()
        logger.info(
            "engine_started",
            check_interval=self.tracker_settings.effective_check_interval,
            rate_limit_per_hour=self.tracker_settings.rate_limit_per_hour,
            retry_queue=len(self.retry_queue),
            source="engine",
        )

    async def aclose(self) -> None:
        await self.fetcher.aclose()
        aclose = getattr(self.notifier, "aclose", None)
        if aclose is not None:
            await aclose()

    async def refresh_custom_selectors(self) -> None:
        self.pipeline.set_custom_selectors(await load_custom_selectors(self.storage))

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def on_reschedule(self, callback: Callable[[], None]) -> None:
        """Register a callback fired when check_interval or auto_check change."""
        self._reschedule_hooks.append(callback)

    async def apply_settings(self, changes: dict[str, Any]) -> TrackerSettings:
        """
        Validate and apply a partial settings update.

        A changed rate_limit_per_hour rebuilds the limiter; a changed
        cache_duration retunes the fetch cache TTL; a changed check_interval
        or auto_check fires the reschedule hooks.

        Raises:
            ValidationError: the merged settings are out of range.
        """
        previous = self.tracker_settings
        updated = previous.merged(changes)
        self.tracker_settings = updated

        if updated.rate_limit_per_hour != previous.rate_limit_per_hour:
            self.limiter = TokenBucket(updated.rate_limit_per_hour, clock=self.clock)
            logger.info(
                "rate_limiter_rebuilt",
                rate_limit_per_hour=updated.rate_limit_per_hour,
                source="engine",
            )
        if updated.cache_duration != previous.cache_duration:
            self.fetch_cache.default_ttl = float(updated.cache_duration)

        if any(getattr(updated, f) != getattr(previous, f) for f in _RESCHEDULE_FIELDS):
            for hook in self._reschedule_hooks:
                hook()

        await self.settings_repo.save(updated)
        return updated

    # ------------------------------------------------------------------
    # Checking
    # ------------------------------------------------------------------

    async def acquire_token(self) -> None:
        """Consume a rate-limit token; on exhaustion wait briefly and proceed."""
        try:
            self.limiter.check_limit()
        except RateLimitError as e:
            logger.warning(
                "rate_limit_backoff",
                retry_after=round(e.retry_after, 2),
                wait_seconds=settings.RATE_LIMIT_BACKOFF_SECONDS,
                source="engine",
            )
            await self.sleep(settings.RATE_LIMIT_BACKOFF_SECONDS)

    async def check_product(self, product: TrackedProduct) -> CheckResult:
        """
        Fetch the product page and merge the observed price into `product`.

        Mutates `product` in place; never persists. Failures are recorded on
        the product and returned, not raised.
        """
        old_price = product.price
        await self.acquire_token()

        try:
            result = await self.fetcher.fetch_price(product.url)
        except ExtractionError as e:
            product.mark_failure(CheckStatus.FAILED, e.message)
            return CheckResult(product, False, old_price, e)
        except PriceWatchError as e:
            product.mark_failure(CheckStatus.ERROR, e.message)
            return CheckResult(product, False, old_price, e)

        changed = product.apply_price(result.price)
        product.confidence = result.confidence
        if changed:
            if result.name and len(result.name) > 10:
                product.name = result.name
            logger.info(
                "price_changed",
                url=product.url,
                old_price=old_price,
                new_price=result.price,
                currency=product.currency,
                source="engine",
            )
        return CheckResult(product, changed, old_price)

    async def check_single_product(self, url: str) -> CheckResult:
        """
        On-demand check of one tracked product, persisted immediately.

        Raises:
            KeyError: the URL is not tracked.
        """
        product = await self.products.get(url)
        if product is None:
            raise KeyError(url)

        outcome = await self.check_product(product)
        if outcome.ok:
            self.retry_queue.remove(url)
        else:
            self.retry_queue.record_failure(url, str(outcome.error))

        await self.products.update(product)
        await self.retry_queue.persist()
        if outcome.changed:
            await self.notify_change(product, outcome.old_price)
            await self.run_alert_pass([product])
        return outcome

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def deliver(self, notification: Notification) -> None:
        try:
            await self.notifier.notify(notification)
        except Exception as e:
            logger.error(
                "notification_delivery_failed",
                title=notification.title,
                error=str(e),
                error_type=type(e).__name__,
                source="engine",
            )

    async def notify_change(self, product: TrackedProduct, old_price: float) -> None:
        if should_notify_change(old_price, product.price, self.tracker_settings):
            await self.deliver(build_price_change_notification(product, old_price, product.price))

    async def run_alert_pass(self, products: list[TrackedProduct]) -> list[TriggeredAlert]:
        """Evaluate alerts against `products` and deliver the triggered ones."""
        if not self.tracker_settings.enable_price_alerts:
            return []
        try:
            triggered = await self.alerts.check_all_alerts(products)
        except StorageError as e:
            logger.error("alert_pass_failed", error=e.message, error_type="StorageError", source="engine")
            return []

        for item in triggered:
            await self.deliver(
                Notification(
                    title="Price alert",
                    message=item.evaluation.message or "",
                    severity=item.evaluation.severity or Severity.INFO,
                    url=item.product.url,
                    tags=["alert", item.alert.type.value],
                )
            )
        return triggered
