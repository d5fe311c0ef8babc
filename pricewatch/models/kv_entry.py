"""
PriceWatch — Key/Value Entry Model

Backing table for SqlStorage. Each row is one storage key inside a
namespace; the value is an arbitrary JSON document (a product list, the
settings dict, the alert list, ...).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, TIMESTAMP, String, func
from sqlalchemy.orm import Mapped, mapped_column

from pricewatch.models.base import Base


class KVEntry(Base):
    """One persisted key. Primary key is (namespace, key)."""

    __tablename__ = "kv_entries"

    namespace: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Process-wide storage namespace",
    )
    key: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Storage key, e.g. 'trackedProducts'",
    )
    value: Mapped[Any] = mapped_column(
        JSON,
        nullable=True,
        comment="JSON-serialized value",
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<KVEntry namespace={self.namespace!r} key={self.key!r}>"
