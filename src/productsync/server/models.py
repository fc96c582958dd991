"""SQLAlchemy models for productsync server.

This module defines the database schema using SQLAlchemy ORM.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from productsync.core.timestamps import utc_now_ms
from productsync.core.types import BUSINESS_FIELDS


class UTCDateTime(TypeDecorator[datetime]):
    """DateTime column that always hands back aware UTC values.

    SQLite drops tzinfo on storage, so naive values read back are UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class Product(Base):
    """A product with optimistic-concurrency versioning.

    ``revision`` is the ORM version counter: SQLAlchemy sets it to 1 on insert,
    increments it on every flushed UPDATE and adds ``WHERE revision = <loaded>``
    to that UPDATE, so a concurrent write raises StaleDataError instead of
    silently winning.
    """

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    sku: Mapped[str | None] = mapped_column(String(50), nullable=True)
    weight: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    dimensions: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    min_stock_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cost_price: Mapped[float | None] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now_ms, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now_ms, nullable=False
    )
    revision: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": revision}

    # Indexes
    __table_args__ = (
        Index("idx_products_name", "name"),
        Index("idx_products_category", "category"),
        Index("idx_products_updated", "updated_at"),
    )

    def business_fields(self) -> dict[str, Any]:
        """Business field values keyed by attribute name."""
        return {name: getattr(self, name) for name in BUSINESS_FIELDS}

    def as_dict(self) -> dict[str, Any]:
        """Full record keyed by attribute name."""
        return {
            "id": self.id,
            **self.business_fields(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "revision": self.revision,
        }
