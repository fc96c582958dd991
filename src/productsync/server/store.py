"""Store contract consumed by the concurrency services.

The writer, detector and auditor receive a RecordStore handle explicitly;
Database implements it on SQLite, tests use an in-memory fake.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, NamedTuple, Protocol

from productsync.server.models import Product


class RevisionStamp(NamedTuple):
    """Version information of one product, without business fields."""

    id: str
    revision: int
    updated_at: datetime


class RecordStore(Protocol):
    """Protocol for persisting revisioned products."""

    def create_product(self, fields: Mapping[str, Any]) -> Product:
        """Create a product at revision 1."""
        ...

    def get_product(self, product_id: str) -> Product | None:
        """Get a product by ID."""
        ...

    def list_products(self) -> list[Product]:
        """List products, newest first."""
        ...

    def list_revision_stamps(self) -> list[RevisionStamp]:
        """List (id, revision, updated_at), updated_at descending then id."""
        ...

    def write_product(
        self,
        product_id: str,
        fields: Mapping[str, Any],
        expected_revision: int | None = None,
    ) -> Product | None:
        """Apply fields, bump revision and updated_at.

        Returns None when the product is missing or, with expected_revision,
        when the stored revision differs. Nothing is written in that case.
        """
        ...

    def delete_product(self, product_id: str) -> bool:
        """Delete a product. Returns False if not found."""
        ...

    def list_categories(self) -> list[str]:
        """List distinct non-blank categories, sorted."""
        ...
