"""
PriceWatch — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- In-memory and SQLite-backed storage
- Mock HTTP client (respx)
- A manual clock for caches, rate limiters and sweep staggering
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
import respx

from factories import ManualClock, RecordingSleep
from pricewatch.storage.memory import MemoryStorage
from pricewatch.storage.sql import SqlStorage


# ---------------------------------------------------------------------------
# Time Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def recording_sleep(clock: ManualClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def now() -> datetime:
    """Current timestamp for tests."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Storage Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest_asyncio.fixture
async def sql_storage(tmp_path) -> AsyncGenerator[SqlStorage, None]:
    """
    SQLite-backed storage in a temp file.

    Creates a fresh database for each test, ensuring isolation.
    """
    storage = SqlStorage.from_url(f"sqlite+aiosqlite:///{tmp_path / 'pricewatch.db'}", "test")
    await storage.create_tables()
    yield storage
    await storage.dispose()


# ---------------------------------------------------------------------------
# HTTP Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def mock_async_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Mock async HTTP client with respx interceptor.

    All HTTP requests are intercepted and must be explicitly mocked
    (respx.get(...) inside the test). Prevents accidental live calls.
    """
    with respx.mock:
        async with httpx.AsyncClient() as client:
            yield client
