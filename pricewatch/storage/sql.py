"""
PriceWatch — SQL Storage

Storage implementation over one `kv_entries` table (SQLAlchemy 2.0 async).
Defaults to sqlite+aiosqlite; any async SQLAlchemy URL works.

Every SQLAlchemy failure is re-raised as StorageError so callers deal with
a single error type.

Usage:
    storage = SqlStorage.from_url(settings.DATABASE_URL)
    await storage.create_tables()
    await storage.set("settings", {...})
    await storage.dispose()
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import delete, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from pricewatch.config import settings
from pricewatch.errors import StorageError
from pricewatch.models.base import Base
from pricewatch.models.kv_entry import KVEntry

logger = structlog.get_logger(__name__)


def create_db_engine(database_url: str | None = None) -> AsyncEngine:
    """
    Create the async engine for DATABASE_URL.

    In-memory sqlite gets a StaticPool so every session sees the same
    database.
    """
    url = database_url or settings.DATABASE_URL
    if url.startswith("sqlite") and ":memory:" in url:
        return create_async_engine(
            url,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


class SqlStorage:
    """Key/value storage over the kv_entries table, scoped by namespace."""

    def __init__(self, engine: AsyncEngine, namespace: str | None = None) -> None:
        self._engine = engine
        self.namespace = namespace or settings.STORAGE_NAMESPACE
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_url(cls, database_url: str | None = None, namespace: str | None = None) -> SqlStorage:
        return cls(create_db_engine(database_url), namespace)

    async def create_tables(self) -> None:
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError("Could not create storage tables", {"error": str(e)}) from e

    async def health_check(self) -> None:
        """Round-trip a trivial query; raises StorageError when unreachable."""
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StorageError("Storage health check failed", {"error": str(e)}) from e

    async def dispose(self) -> None:
        await self._engine.dispose()

    async def get(self, key: str, default: Any = None) -> Any:
        try:
            async with self._session_factory() as session:
                entry = await session.get(KVEntry, (self.namespace, key))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read '{key}'", {"key": key, "error": str(e)}) from e
        if entry is None or entry.value is None:
            return default
        return entry.value

    async def set(self, key: str, value: Any) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.merge(KVEntry(namespace=self.namespace, key=key, value=value))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write '{key}'", {"key": key, "error": str(e)}) from e
        logger.debug("storage_write", key=key, namespace=self.namespace, source="storage")

    async def remove(self, key: str) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        delete(KVEntry).where(
                            KVEntry.namespace == self.namespace,
                            KVEntry.key == key,
                        )
                    )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to remove '{key}'", {"key": key, "error": str(e)}) from e

    async def keys(self) -> list[str]:
        try:
            async with self._session_factory() as session:
                rows = await session.execute(
                    select(KVEntry.key).where(KVEntry.namespace == self.namespace)
                )
                return list(rows.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError("Failed to list keys", {"error": str(e)}) from e
