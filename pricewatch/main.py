"""
PriceWatch — Application Entrypoint

Configures structlog, opens the key/value store, builds the Engine and runs
the scheduler until SIGINT/SIGTERM.

Run via:
    python -m pricewatch.main              # scheduler (default)
    python -m pricewatch.main check        # one sweep, print the summary
    python -m pricewatch.main extract URL  # fetch + extract one page
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

import structlog

from pricewatch import __version__
from pricewatch.config import settings
from pricewatch.engine import Engine
from pricewatch.errors import PriceWatchError
from pricewatch.notify import Notifier
from pricewatch.notify.discord import DiscordNotifier
from pricewatch.notify.log import LogNotifier
from pricewatch.pipeline.scheduler import Scheduler, run_scheduler
from pricewatch.storage.memory import MemoryStorage
from pricewatch.storage.sql import SqlStorage


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # Configure stdlib logging first (for third-party libraries)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def _build_notifier() -> Notifier:
    if settings.DISCORD_WEBHOOK_URL:
        return DiscordNotifier(settings.DISCORD_WEBHOOK_URL)
    return LogNotifier()


async def _open_storage() -> SqlStorage:
    """Create the store and verify the connection; raises on failure."""
    logger = structlog.get_logger(__name__)
    storage = SqlStorage.from_url(settings.DATABASE_URL, settings.STORAGE_NAMESPACE)

    try:
        await storage.create_tables()
        await storage.health_check()
        logger.info("database_health_check_passed")
    except PriceWatchError as e:
        logger.error(
            "database_health_check_failed",
            error=e.message,
            error_type=type(e).__name__,
        )
        await storage.dispose()
        raise
    return storage


async def main() -> None:
    """
    Application entrypoint. Initializes subsystems and starts the scheduler.

    Execution order:
    1. Configure logging (structlog JSON)
    2. Open storage and verify the connection (health check)
    3. Build and start the engine (settings, selectors, retry queue)
    4. Run the scheduler until a shutdown signal
    """
    _configure_logging(log_level=settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)

    logger.info("pricewatch_startup_begin", version=__version__)
    if not settings.DISCORD_WEBHOOK_URL:
        logger.warning("config_discord_webhook_missing", note="notifications go to the log")

    storage = await _open_storage()
    engine = Engine(storage, _build_notifier())

    try:
        await engine.start()
        logger.info("pricewatch_startup_complete", database_url=settings.DATABASE_URL)
        await run_scheduler(engine)
    except KeyboardInterrupt:
        logger.info("pricewatch_interrupted_by_user")
    except Exception as e:
        logger.error(
            "pricewatch_fatal_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await engine.aclose()
        await storage.dispose()
        logger.info("pricewatch_shutdown_complete")


async def check_once() -> dict[str, int]:
    """Run a single sweep against the configured store."""
    _configure_logging(log_level=settings.LOG_LEVEL)
    storage = await _open_storage()
    engine = Engine(storage, _build_notifier())
    try:
        await engine.start()
        return await Scheduler(engine).run_sweep()
    finally:
        await engine.aclose()
        await storage.dispose()


async def extract_once(url: str) -> dict[str, object]:
    """Fetch one page and run the extraction pipeline, without storage."""
    _configure_logging(log_level=settings.LOG_LEVEL)
    engine = Engine(MemoryStorage())
    try:
        result = await engine.fetcher.fetch_price(url)
        return result.model_dump(mode="json")
    finally:
        await engine.aclose()


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


def cli(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="pricewatch", description="Price extraction and monitoring")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="run the scheduler (default)")
    sub.add_parser("check", help="run one sweep and print the summary")
    extract = sub.add_parser("extract", help="extract the price from one page")
    extract.add_argument("url")

    args = parser.parse_args(argv)

    if args.command == "check":
        print(json.dumps(asyncio.run(check_once())))
        return 0
    if args.command == "extract":
        try:
            print(json.dumps(asyncio.run(extract_once(args.url)), ensure_ascii=False, indent=2))
        except PriceWatchError as e:
            print(json.dumps(e.to_dict(), ensure_ascii=False), file=sys.stderr)
            return 1
        return 0

    asyncio.run(main())
    return 0


if __name__ == "__main__":
    sys.exit(cli())
