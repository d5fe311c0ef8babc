"""
PriceWatch — Configuration & Constants

Every threshold, timeout, confidence band and scoring weight lives here.
No hardcoded values in business logic.

Two layers:
- Settings: process-level constants, loaded from the environment / .env.
- TrackerSettings: the user-facing settings payload supplied by the
  external settings surface (check interval, retries, rate limit, ...).

Usage:
    from pricewatch.config import settings
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings

from pricewatch.errors import ValidationError


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class CheckStatus(str, Enum):
    """Outcome of the last check of a tracked product."""
    SUCCESS = "success"
    FAILED = "failed"   # page fetched but no price could be extracted
    ERROR = "error"     # network / unexpected failure


class AlertType(str, Enum):
    TARGET_PRICE = "target_price"
    PERCENTAGE_DROP = "percentage_drop"
    PERCENTAGE_RISE = "percentage_rise"
    ANY_CHANGE = "any_change"


class Severity(str, Enum):
    """Notification severity."""
    SUCCESS = "success"
    WARNING = "warning"
    INFO = "info"


class ExtractionMethod(str, Enum):
    """Which strategy produced an extraction result."""
    CUSTOM_SELECTOR = "custom_selector"
    SITE_CONFIG = "site_config"
    STRUCTURED_DATA = "structured_data"
    META_TAGS = "meta_tags"
    HEURISTIC = "heuristic"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Central configuration for PriceWatch.

    Loads from environment variables with fallback defaults.
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # -----------------------------------------------------------------------
    # Runtime
    # -----------------------------------------------------------------------
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str = "sqlite+aiosqlite:///pricewatch.db"
    STORAGE_NAMESPACE: str = "pricewatch"
    DISCORD_WEBHOOK_URL: str = ""

    # -----------------------------------------------------------------------
    # Network fetch
    # -----------------------------------------------------------------------
    FETCH_TIMEOUT_SECONDS: float = 15.0
    FETCH_MIN_BODY_LENGTH: int = 50          # shorter bodies are treated as broken responses
    USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    ACCEPT_LANGUAGE: str = "tr-TR,tr;q=0.9,en-US;q=0.8,en;q=0.7"

    # -----------------------------------------------------------------------
    # Caches
    # -----------------------------------------------------------------------
    FETCH_CACHE_TTL_SECONDS: float = 300.0
    FETCH_CACHE_MAX_SIZE: int = 100
    EXTRACTION_CACHE_TTL_SECONDS: float = 10.0
    EXTRACTION_CACHE_MAX_SIZE: int = 50

    # -----------------------------------------------------------------------
    # Rate limiting (token bucket)
    # -----------------------------------------------------------------------
    RATE_LIMIT_PER_HOUR: int = 100
    RATE_LIMIT_WINDOW_SECONDS: float = 3600.0
    RATE_LIMIT_BACKOFF_SECONDS: float = 2.0

    # -----------------------------------------------------------------------
    # Scheduler
    # -----------------------------------------------------------------------
    CHECK_INTERVAL_MINUTES: int = 30
    CHECK_INTERVAL_MIN_MINUTES: int = 5
    CHECK_INTERVAL_MAX_MINUTES: int = 1440
    FIRST_RUN_DELAY_SECONDS: float = 60.0
    SWEEP_STAGGER_SECONDS: float = 2.0
    RETRY_INTERVAL_MINUTES: int = 10
    MAX_RETRIES: int = 3

    # -----------------------------------------------------------------------
    # Tracked products
    # -----------------------------------------------------------------------
    PRICE_HISTORY_LIMIT: int = 30
    MAX_TRACKED_PRODUCTS: int = 50
    PRICE_CHANGE_EPSILON: float = 0.01
    MIN_PRICE: float = 0.01
    MAX_PRICE: float = 10_000_000.0
    NAME_MIN_LENGTH: int = 3
    NAME_MAX_LENGTH: int = 200
    DEFAULT_CURRENCY: str = "TRY"

    # -----------------------------------------------------------------------
    # Extraction confidence bands
    # -----------------------------------------------------------------------
    CONFIDENCE_SITE_CONFIG: float = 0.95
    CONFIDENCE_CUSTOM_SELECTOR: float = 0.90
    CONFIDENCE_STRUCTURED_DATA: float = 0.85
    CONFIDENCE_META_TAGS: float = 0.75
    CONFIDENCE_HEURISTIC: float = 0.60

    # -----------------------------------------------------------------------
    # Structured data limits
    # -----------------------------------------------------------------------
    JSONLD_MAX_BYTES: int = 100_000
    JSONLD_MAX_ITEMS: int = 10

    # -----------------------------------------------------------------------
    # Candidate scanner
    # -----------------------------------------------------------------------
    SCAN_MIN_TEXT_LENGTH: int = 2
    SCAN_MAX_TEXT_LENGTH: int = 30
    SCAN_MAX_CHILDREN: int = 20
    SCAN_MAX_CANDIDATES: int = 50
    SCAN_MIN_PRICE: float = 0.01
    SCAN_MAX_PRICE: float = 999_999.0
    HEURISTIC_NAME_MIN_LENGTH: int = 15
    HEURISTIC_NAME_MAX_LENGTH: int = 300

    # -----------------------------------------------------------------------
    # Candidate scorer
    # -----------------------------------------------------------------------
    SCORE_BASE_FONT_SIZE: float = 12.0
    SCORE_FONT_SIZE_FACTOR: float = 3.0
    SCORE_FONT_SIZE_CAP: float = 30.0
    SCORE_BOLD_BONUS: float = 20.0            # font-weight >= 600
    SCORE_MEDIUM_BONUS: float = 10.0          # font-weight >= 500
    SCORE_IDEAL_AREA: float = 10_000.0        # px^2
    SCORE_AREA_BONUS: float = 20.0
    SCORE_CURRENCY_BONUS: float = 30.0
    SCORE_KEYWORD_BONUS: float = 25.0
    SCORE_POSITION_BONUS: float = 20.0
    SCORE_CENTER_BONUS: float = 10.0
    VIEWPORT_WIDTH: float = 1280.0
    VIEWPORT_HEIGHT: float = 900.0
    ESTIMATED_LINE_HEIGHT: float = 24.0       # px per element in document order

    # -----------------------------------------------------------------------
    # Currencies: approximate rates relative to TRY, display only
    # -----------------------------------------------------------------------
    CURRENCIES: dict[str, dict[str, Any]] = {
        "TRY": {"symbol": "₺", "name": "Türk Lirası", "rate": 1.0},
        "USD": {"symbol": "$", "name": "US Dollar", "rate": 0.029},
        "EUR": {"symbol": "€", "name": "Euro", "rate": 0.027},
        "GBP": {"symbol": "£", "name": "British Pound", "rate": 0.023},
    }
    VALID_CURRENCY_CODES: list[str] = ["TRY", "USD", "EUR", "GBP", "JPY", "CNY", "AED"]

    # -----------------------------------------------------------------------
    # Backup format
    # -----------------------------------------------------------------------
    EXPORT_VERSION: str = "2.1.0"


# Singleton instance
settings = Settings()


# ---------------------------------------------------------------------------
# User-facing tracker settings
# ---------------------------------------------------------------------------

class TrackerSettings(BaseModel):
    """
    Settings payload owned by the external settings surface.

    Accepts both snake_case and the camelCase keys the storage layer persists.
    Range violations raise pricewatch.errors.ValidationError via from_payload().
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    check_interval: int = Field(default=settings.CHECK_INTERVAL_MINUTES, ge=1, le=1440)
    notifications: bool = True
    notify_on_price_up: bool = False
    notify_on_price_down: bool = True
    auto_check: bool = True
    max_retries: int = Field(default=settings.MAX_RETRIES, ge=0, le=10)
    rate_limit_per_hour: int = Field(default=settings.RATE_LIMIT_PER_HOUR, ge=1, le=1000)
    min_change_percent: float = Field(default=5.0, ge=0, le=100)
    cache_duration: int = Field(default=int(settings.FETCH_CACHE_TTL_SECONDS), ge=1, le=86400)
    preferred_currency: str = settings.DEFAULT_CURRENCY
    enable_price_alerts: bool = True

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> TrackerSettings:
        """Build from a stored/submitted dict, mapping pydantic errors to ValidationError."""
        try:
            return cls.model_validate(payload or {})
        except pydantic.ValidationError as e:
            raise ValidationError(
                "Invalid settings payload",
                {"errors": [err["msg"] for err in e.errors()]},
            ) from e

    def merged(self, changes: dict[str, Any]) -> TrackerSettings:
        """Return a copy with `changes` applied and re-validated."""
        data = self.model_dump()
        by_alias = {to_camel(name): name for name in data}
        for key, value in changes.items():
            data[by_alias.get(key, key)] = value
        return TrackerSettings.from_payload(data)

    @property
    def effective_check_interval(self) -> int:
        """check_interval clamped to the schedulable range."""
        return max(
            settings.CHECK_INTERVAL_MIN_MINUTES,
            min(self.check_interval, settings.CHECK_INTERVAL_MAX_MINUTES),
        )

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
