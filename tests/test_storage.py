"""
Tests for storage backends and repositories.

MemoryStorage and SqlStorage (SQLite file via aiosqlite) share the same
contract; repositories are exercised over MemoryStorage.
"""

from __future__ import annotations

import pytest

from factories import make_product
from pricewatch.config import AlertType, TrackerSettings, settings
from pricewatch.errors import StorageError, ValidationError
from pricewatch.models.alert import Alert
from pricewatch.storage import MemoryStorage, SqlStorage, Storage
from pricewatch.storage.base import CUSTOM_SELECTORS, SETTINGS, TRACKED_PRODUCTS
from pricewatch.storage.repositories import (
    AlertRepository,
    ProductRepository,
    SettingsRepository,
    load_custom_selectors,
)


class TestMemoryStorage:
    @pytest.mark.asyncio
    async def test_round_trip(self, memory_storage: MemoryStorage) -> None:
        await memory_storage.set("k", {"a": [1, 2]})
        assert await memory_storage.get("k") == {"a": [1, 2]}
        assert await memory_storage.keys() == ["k"]

    @pytest.mark.asyncio
    async def test_values_are_copied(self, memory_storage: MemoryStorage) -> None:
        """Mutating a value read from storage never changes the stored copy."""
        await memory_storage.set("k", [1])
        value = await memory_storage.get("k")
        value.append(2)
        assert await memory_storage.get("k") == [1]

    @pytest.mark.asyncio
    async def test_remove_and_default(self, memory_storage: MemoryStorage) -> None:
        await memory_storage.set("k", 1)
        await memory_storage.remove("k")
        await memory_storage.remove("k")
        assert await memory_storage.get("k", "default") == "default"

    def test_satisfies_protocol(self, memory_storage: MemoryStorage) -> None:
        assert isinstance(memory_storage, Storage)


class TestSqlStorage:
    @pytest.mark.asyncio
    async def test_round_trip(self, sql_storage: SqlStorage) -> None:
        await sql_storage.set(TRACKED_PRODUCTS, [{"url": "https://a.example.com", "price": 1.5}])
        assert await sql_storage.get(TRACKED_PRODUCTS) == [{"url": "https://a.example.com", "price": 1.5}]

    @pytest.mark.asyncio
    async def test_overwrite(self, sql_storage: SqlStorage) -> None:
        await sql_storage.set(SETTINGS, {"checkInterval": 30})
        await sql_storage.set(SETTINGS, {"checkInterval": 60})
        assert await sql_storage.get(SETTINGS) == {"checkInterval": 60}

    @pytest.mark.asyncio
    async def test_missing_key_returns_default(self, sql_storage: SqlStorage) -> None:
        assert await sql_storage.get("nope", []) == []

    @pytest.mark.asyncio
    async def test_keys_and_remove(self, sql_storage: SqlStorage) -> None:
        await sql_storage.set("a", 1)
        await sql_storage.set("b", 2)
        await sql_storage.remove("a")
        assert await sql_storage.keys() == ["b"]

    @pytest.mark.asyncio
    async def test_namespaces_are_isolated(self, sql_storage: SqlStorage) -> None:
        other = SqlStorage(sql_storage._engine, namespace="other")
        await sql_storage.set("k", "mine")
        assert await other.get("k") is None

    @pytest.mark.asyncio
    async def test_health_check(self, sql_storage: SqlStorage) -> None:
        await sql_storage.health_check()

    @pytest.mark.asyncio
    async def test_missing_table_raises_storage_error(self, tmp_path) -> None:
        """SQLAlchemy failures surface as StorageError."""
        storage = SqlStorage.from_url(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        try:
            with pytest.raises(StorageError):
                await storage.get("k")
        finally:
            await storage.dispose()


class TestProductRepository:
    @pytest.mark.asyncio
    async def test_add_and_load(self, memory_storage: MemoryStorage) -> None:
        repo = ProductRepository(memory_storage)
        await repo.add(make_product())
        products = await repo.load()
        assert len(products) == 1
        assert products[0].initial_price == pytest.approx(100.0)

    @pytest.mark.asyncio
    async def test_stored_in_camel_case(self, memory_storage: MemoryStorage) -> None:
        await ProductRepository(memory_storage).add(make_product())
        raw = await memory_storage.get(TRACKED_PRODUCTS)
        assert "priceHistory" in raw[0]
        assert "lastCheckStatus" in raw[0]

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, memory_storage: MemoryStorage) -> None:
        repo = ProductRepository(memory_storage)
        await repo.add(make_product())
        with pytest.raises(ValidationError):
            await repo.add(make_product())

    @pytest.mark.asyncio
    async def test_non_http_url_rejected(self, memory_storage: MemoryStorage) -> None:
        with pytest.raises(ValidationError):
            await ProductRepository(memory_storage).add(make_product(url="ftp://example.com/x"))

    @pytest.mark.asyncio
    async def test_catalog_limit(self, memory_storage: MemoryStorage) -> None:
        repo = ProductRepository(memory_storage)
        await repo.save([
            make_product(url=f"https://shop.example.com/p/{i}")
            for i in range(settings.MAX_TRACKED_PRODUCTS)
        ])
        with pytest.raises(ValidationError):
            await repo.add(make_product(url="https://shop.example.com/p/extra"))

    @pytest.mark.asyncio
    async def test_invalid_records_skipped(self, memory_storage: MemoryStorage) -> None:
        """A corrupt record is skipped on load instead of failing the catalog."""
        await memory_storage.set(TRACKED_PRODUCTS, [
            make_product().to_storage(),
            {"url": "https://shop.example.com/bad", "name": "Broken", "price": -1},
            "not a record",
        ])
        repo = ProductRepository(memory_storage)
        assert [p.url for p in await repo.load()] == ["https://shop.example.com/p/1"]
        assert await repo.count() == 2

    @pytest.mark.asyncio
    async def test_update_and_remove(self, memory_storage: MemoryStorage) -> None:
        repo = ProductRepository(memory_storage)
        product = await repo.add(make_product())
        product.name = "Renamed Product"
        assert await repo.update(product) is True
        assert (await repo.get(product.url)).name == "Renamed Product"
        assert await repo.remove(product.url) is True
        assert await repo.remove(product.url) is False
        assert await repo.get(product.url) is None

    @pytest.mark.asyncio
    async def test_writes_keep_unparseable_records(self, memory_storage: MemoryStorage) -> None:
        broken = {"url": "https://shop.example.com/p/2", "name": "Broken"}
        await memory_storage.set(TRACKED_PRODUCTS, [make_product(price=100.0).to_storage(), broken])
        repo = ProductRepository(memory_storage)

        product = await repo.get("https://shop.example.com/p/1")
        product.price = 80.0
        await repo.save_checked([product])
        await repo.add(make_product(url="https://shop.example.com/p/3"))
        await repo.remove("https://shop.example.com/p/3")

        stored = await memory_storage.get(TRACKED_PRODUCTS)
        assert stored[0]["price"] == pytest.approx(80.0)
        assert stored[1] == broken
        assert len(stored) == 2


class TestOtherRepositories:
    @pytest.mark.asyncio
    async def test_settings_default_when_missing(self, memory_storage: MemoryStorage) -> None:
        loaded = await SettingsRepository(memory_storage).load()
        assert loaded == TrackerSettings()

    @pytest.mark.asyncio
    async def test_settings_invalid_payload_falls_back(self, memory_storage: MemoryStorage) -> None:
        await memory_storage.set(SETTINGS, {"checkInterval": -5})
        loaded = await SettingsRepository(memory_storage).load()
        assert loaded.check_interval == settings.CHECK_INTERVAL_MINUTES

    @pytest.mark.asyncio
    async def test_settings_round_trip(self, memory_storage: MemoryStorage) -> None:
        repo = SettingsRepository(memory_storage)
        await repo.save(TrackerSettings(check_interval=60, max_retries=5))
        loaded = await repo.load()
        assert loaded.check_interval == 60
        assert loaded.max_retries == 5

    @pytest.mark.asyncio
    async def test_alert_toggle_and_remove(self, memory_storage: MemoryStorage) -> None:
        repo = AlertRepository(memory_storage)
        alert = await repo.add(Alert(product_url="https://shop.example.com/p/1", type=AlertType.ANY_CHANGE))
        toggled = await repo.toggle(alert.id)
        assert toggled[0].enabled is False
        assert await repo.remove(alert.id) == []

    @pytest.mark.asyncio
    async def test_custom_selectors(self, memory_storage: MemoryStorage) -> None:
        assert await load_custom_selectors(memory_storage) == {}
        await memory_storage.set(CUSTOM_SELECTORS, {"shop.example.com": {"selector": "#p"}})
        assert await load_custom_selectors(memory_storage) == {"shop.example.com": {"selector": "#p"}}
