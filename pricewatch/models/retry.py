"""PriceWatch — Retry Queue Entry"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pricewatch.models.product import utcnow


class RetryEntry(BaseModel):
    """A URL whose last fetch failed, waiting for the retry pass."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str
    attempts: int = 0
    first_failed: datetime = Field(default_factory=utcnow)
    last_error: str | None = None
