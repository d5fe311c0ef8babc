"""PriceWatch — Extraction Layer"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from pricewatch.config import ExtractionMethod
from pricewatch.models.product import utcnow


class ExtractionResult(BaseModel):
    """Structured result from any extraction strategy."""
    name: str
    price: float = Field(gt=0)
    currency: str
    image: str | None = None
    site: str | None = None
    url: str
    previous_price: float | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    confidence: float = Field(ge=0, le=1)
    method: ExtractionMethod
