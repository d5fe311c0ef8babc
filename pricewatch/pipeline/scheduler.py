"""
PriceWatch — Polling Scheduler

Drives periodic sweeps over the tracked catalog and a separate retry pass
for URLs whose last fetch failed.

Cadences:
- Sweep: every check_interval minutes (clamped to [5, 1440]), first run
  ~60s after start; disabled while auto_check is off
- Retry pass: every RETRY_INTERVAL_MINUTES
- A settings change to check_interval / auto_check reschedules the next
  sweep to ~60s from now

Sweeps and retry passes are serialized by one lock; a trigger that fires
while a sweep is running waits for it instead of overlapping.

Per sweep:
1. Read the catalog and remember its size
2. For each product in order: wait until start + index * 2s, take a
   rate-limit token, fetch, merge the price (history, previous_price)
3. Record failures on the product and in the retry queue
4. Persist once, only if the stored catalog size is unchanged
   (torn-write guard: a concurrent add/remove wins, this sweep's write is dropped);
   stored records that fail validation are written back untouched
5. Alert pass + change notifications
"""

from __future__ import annotations

import asyncio
import signal
from typing import Any

import structlog

from pricewatch.config import CheckStatus, settings
from pricewatch.engine import Engine
from pricewatch.errors import StorageError
from pricewatch.models.product import TrackedProduct

logger = structlog.get_logger(__name__)


def _empty_summary() -> dict[str, int]:
    return {"checked": 0, "updated": 0, "errors": 0}


class Scheduler:
    """
    Async scheduler for price sweeps and retry passes.

    Usage:
        scheduler = Scheduler(engine)
        await scheduler.run()        # until shutdown()
        await scheduler.run_sweep()  # one-off
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._sweep_lock = asyncio.Lock()
        self._shutdown_event = asyncio.Event()
        self._wake_event = asyncio.Event()
        self._reschedule_requested = False
        engine.on_reschedule(self.reschedule)

    @property
    def sweep_running(self) -> bool:
        return self._sweep_lock.locked()

    async def shutdown(self) -> None:
        """Signal graceful shutdown to the scheduler loop."""
        logger.info("scheduler_shutdown_requested")
        self._shutdown_event.set()
        self._wake_event.set()

    def reschedule(self) -> None:
        """Recompute the next sweep time from the current tracker settings."""
        self._reschedule_requested = True
        self._wake_event.set()

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def run_sweep(self) -> dict[str, int]:
        """
        Check every tracked product once.

        Returns:
            {"checked": n, "updated": n, "errors": n}
        """
        async with self._sweep_lock:
            return await self._sweep()

    async def _sweep(self) -> dict[str, int]:
        engine = self.engine
        start_count = await engine.products.count()
        products = await engine.products.load()
        if not products:
            logger.info("sweep_no_products", stored=start_count)
            return _empty_summary()

        logger.info("sweep_start", products=len(products), stored=start_count)
        summary = _empty_summary()
        changed: list[tuple[TrackedProduct, float]] = []
        started = engine.clock()

        for index, product in enumerate(products):
            delay = started + index * settings.SWEEP_STAGGER_SECONDS - engine.clock()
            if delay > 0:
                await engine.sleep(delay)

            try:
                outcome = await engine.check_product(product)
            except Exception as e:
                logger.error(
                    "sweep_item_failed",
                    url=product.url,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                product.mark_failure(CheckStatus.ERROR, str(e))
                engine.retry_queue.record_failure(product.url, str(e))
                summary["errors"] += 1
                continue

            if outcome.ok:
                summary["checked"] += 1
                engine.retry_queue.remove(product.url)
                if outcome.changed:
                    summary["updated"] += 1
                    changed.append((product, outcome.old_price))
            else:
                summary["errors"] += 1
                engine.retry_queue.record_failure(product.url, str(outcome.error))
                logger.warning(
                    "sweep_item_error",
                    url=product.url,
                    status=product.last_check_status.value if product.last_check_status else None,
                    error=str(outcome.error),
                )

        await self._persist_products(products, start_count)
        await self._persist_retry_queue()

        for product, old_price in changed:
            await engine.notify_change(product, old_price)
        await engine.run_alert_pass(products)

        logger.info("sweep_complete", **summary)
        return summary

    async def _persist_products(self, products: list[TrackedProduct], start_count: int) -> bool:
        """Write the swept catalog unless its stored size moved underneath us."""
        try:
            current_count = await self.engine.products.count()
            if current_count != start_count:
                logger.warning(
                    "sweep_write_skipped",
                    reason="catalog size changed during sweep",
                    count_at_start=start_count,
                    count_now=current_count,
                )
                return False
            await self.engine.products.save_checked(products)
            return True
        except StorageError as e:
            logger.error("sweep_save_failed", error=e.message, error_type="StorageError")
            return False

    async def _persist_retry_queue(self) -> None:
        try:
            await self.engine.retry_queue.persist()
        except StorageError as e:
            logger.error("retry_queue_save_failed", error=e.message, error_type="StorageError")

    # ------------------------------------------------------------------
    # Retry pass
    # ------------------------------------------------------------------

    async def run_retry_pass(self) -> dict[str, int]:
        """
        Retry queued URLs still below max_retries.

        Successful retries update the matching product and leave the queue;
        failures count an attempt and are dropped at the ceiling.

        Returns:
            {"retried": n, "recovered": n, "dropped": n}
        """
        async with self._sweep_lock:
            return await self._retry_pass()

    async def _retry_pass(self) -> dict[str, int]:
        engine = self.engine
        max_retries = engine.tracker_settings.max_retries
        summary = {"retried": 0, "recovered": 0, "dropped": len(engine.retry_queue.drop_exhausted(max_retries))}

        due = engine.retry_queue.due(max_retries)
        if not due:
            if summary["dropped"]:
                await self._persist_retry_queue()
            return summary

        start_count = await engine.products.count()
        products = await engine.products.load()
        by_url = {p.url: p for p in products}
        changed: list[tuple[TrackedProduct, float]] = []

        for entry in due:
            product = by_url.get(entry.url)
            if product is None:
                engine.retry_queue.remove(entry.url)
                continue

            summary["retried"] += 1
            try:
                outcome = await engine.check_product(product)
            except Exception as e:
                logger.error(
                    "retry_item_failed",
                    url=entry.url,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                product.mark_failure(CheckStatus.ERROR, str(e))
                if engine.retry_queue.record_retry_failure(entry.url, str(e), max_retries) is None:
                    summary["dropped"] += 1
                continue

            if outcome.ok:
                engine.retry_queue.remove(entry.url)
                summary["recovered"] += 1
                if outcome.changed:
                    changed.append((product, outcome.old_price))
                logger.info("retry_succeeded", url=entry.url, attempts=entry.attempts)
            elif engine.retry_queue.record_retry_failure(entry.url, str(outcome.error), max_retries) is None:
                summary["dropped"] += 1

        if summary["retried"]:
            await self._persist_products(products, start_count)
        await self._persist_retry_queue()

        for product, old_price in changed:
            await engine.notify_change(product, old_price)
        if changed:
            await engine.run_alert_pass(products)

        logger.info("retry_pass_complete", **summary)
        return summary

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _sweep_interval(self) -> float | None:
        tracker = self.engine.tracker_settings
        if not tracker.auto_check:
            return None
        return tracker.effective_check_interval * 60.0

    async def run(self) -> None:
        """
        Main scheduler loop. Runs until shutdown is signaled.

        Sweep and retry timers run independently; an error in one job is
        logged and the loop keeps going.
        """
        loop = asyncio.get_running_loop()
        now = loop.time()
        next_sweep = now + settings.FIRST_RUN_DELAY_SECONDS if self._sweep_interval() else None
        next_retry = now + settings.RETRY_INTERVAL_MINUTES * 60.0

        logger.info(
            "scheduler_started",
            check_interval_minutes=self.engine.tracker_settings.effective_check_interval,
            auto_check=self.engine.tracker_settings.auto_check,
            first_run_in_seconds=settings.FIRST_RUN_DELAY_SECONDS,
        )

        try:
            while not self._shutdown_event.is_set():
                if self._reschedule_requested:
                    self._reschedule_requested = False
                    next_sweep = (
                        loop.time() + settings.FIRST_RUN_DELAY_SECONDS
                        if self._sweep_interval()
                        else None
                    )
                    logger.info("scheduler_rescheduled", sweep_enabled=next_sweep is not None)

                now = loop.time()
                try:
                    if next_sweep is not None and now >= next_sweep:
                        await self.run_sweep()
                        interval = self._sweep_interval()
                        next_sweep = loop.time() + interval if interval else None

                    if now >= next_retry:
                        await self.run_retry_pass()
                        next_retry = loop.time() + settings.RETRY_INTERVAL_MINUTES * 60.0
                except Exception as e:
                    logger.error(
                        "scheduler_unknown_error",
                        error=str(e),
                        error_type=type(e).__name__,
                    )

                deadlines = [t for t in (next_sweep, next_retry) if t is not None]
                timeout = max(0.0, min(deadlines) - loop.time())
                if self._reschedule_requested or self._shutdown_event.is_set():
                    continue
                self._wake_event.clear()
                try:
                    await asyncio.wait_for(self._wake_event.wait(), timeout=timeout)
                except asyncio.TimeoutError:
                    # Expected: a timer is due
                    continue

        except asyncio.CancelledError:
            logger.info("scheduler_cancelled")
            raise
        finally:
            logger.info("scheduler_stopped")


async def run_scheduler(engine: Engine) -> None:
    """
    Run the scheduler with graceful shutdown handling.

    Registers SIGTERM/SIGINT handlers to trigger shutdown.
    """
    scheduler = Scheduler(engine)

    def handle_signal(_signum: int, _frame: Any) -> None:
        """Called by SIGTERM/SIGINT."""
        logger.info("scheduler_signal_received")
        asyncio.create_task(scheduler.shutdown())

    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGTERM, handle_signal, signal.SIGTERM, None)
        loop.add_signal_handler(signal.SIGINT, handle_signal, signal.SIGINT, None)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler for all signals
        logger.warning("signal_handlers_not_supported_on_platform")

    try:
        await scheduler.run()
    except Exception as e:
        logger.error("scheduler_fatal_error", error=str(e), error_type=type(e).__name__)
        raise
