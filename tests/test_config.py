"""
Tests for process settings and the user-facing tracker settings payload.
"""

from __future__ import annotations

import pytest

from pricewatch.config import Settings, TrackerSettings, settings
from pricewatch.errors import ValidationError


class TestSettings:
    def test_defaults(self) -> None:
        assert settings.FETCH_TIMEOUT_SECONDS == 15.0
        assert settings.PRICE_HISTORY_LIMIT == 30
        assert settings.MAX_TRACKED_PRODUCTS == 50
        assert settings.SWEEP_STAGGER_SECONDS == 2.0

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
        monkeypatch.setenv("RATE_LIMIT_PER_HOUR", "250")
        loaded = Settings()
        assert loaded.DATABASE_URL == "sqlite+aiosqlite:///:memory:"
        assert loaded.RATE_LIMIT_PER_HOUR == 250


class TestTrackerSettings:
    def test_accepts_camel_case_payload(self) -> None:
        tracker = TrackerSettings.from_payload({"checkInterval": 60, "notifyOnPriceUp": True})
        assert tracker.check_interval == 60
        assert tracker.notify_on_price_up is True

    def test_stored_as_camel_case(self) -> None:
        stored = TrackerSettings().to_storage()
        assert "rateLimitPerHour" in stored
        assert "enablePriceAlerts" in stored

    @pytest.mark.parametrize(
        "payload",
        [
            {"checkInterval": 0},
            {"maxRetries": 11},
            {"rateLimitPerHour": 0},
            {"minChangePercent": 101},
            {"cacheDuration": 0},
        ],
    )
    def test_out_of_range_rejected(self, payload: dict) -> None:
        with pytest.raises(ValidationError):
            TrackerSettings.from_payload(payload)

    @pytest.mark.parametrize(("interval", "effective"), [(1, 5), (30, 30), (1440, 1440)])
    def test_effective_check_interval_clamped(self, interval: int, effective: int) -> None:
        assert TrackerSettings(check_interval=interval).effective_check_interval == effective

    def test_merged_applies_partial_changes(self) -> None:
        base = TrackerSettings(check_interval=30, max_retries=3)
        updated = base.merged({"maxRetries": 5, "auto_check": False})
        assert updated.max_retries == 5
        assert updated.auto_check is False
        assert updated.check_interval == 30
        assert base.max_retries == 3

    def test_merged_validates(self) -> None:
        with pytest.raises(ValidationError):
            TrackerSettings().merged({"checkInterval": 5000})
