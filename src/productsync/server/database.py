"""Server database using SQLAlchemy with SQLite.

This module provides:
- Product CRUD
- Revision-checked writes (compare-and-set on the revision column)
- Revision stamps for cheap consistency checks
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from productsync.core.timestamps import utc_now_ms
from productsync.core.types import BUSINESS_FIELDS
from productsync.server.models import Base, Product
from productsync.server.store import RevisionStamp

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

UNCONDITIONAL_WRITE_ATTEMPTS = 5


def _check_fields(fields: Mapping[str, Any]) -> None:
    """Reject anything that is not a business field."""
    unknown = set(fields) - set(BUSINESS_FIELDS)
    if unknown:
        raise ValueError(f"Unknown product fields: {', '.join(sorted(unknown))}")


class Database:
    """SQLAlchemy database for products.

    Uses SQLite with WAL mode for better concurrency with multiple readers.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Create engine with check_same_thread=False for multi-threaded access
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )

        # Enable WAL mode
        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")

        # Create tables if they don't exist
        Base.metadata.create_all(self._engine)

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine)

    # === Product operations ===

    def create_product(self, fields: Mapping[str, Any]) -> Product:
        """Create a product.

        Args:
            fields: Business field values.

        Returns:
            Created Product at revision 1.

        Raises:
            ValueError: If fields contains unknown names.
        """
        _check_fields(fields)
        now = utc_now_ms()
        with self._session() as session:
            product = Product(**fields, created_at=now, updated_at=now)
            session.add(product)
            session.commit()
            session.refresh(product)
            # Expunge to detach from session
            session.expunge(product)
            return product

    def get_product(self, product_id: str) -> Product | None:
        """Get a product by ID.

        Args:
            product_id: Product ID.

        Returns:
            Product if found, None otherwise.
        """
        with self._session() as session:
            product = session.get(Product, product_id)
            if product:
                session.expunge(product)
            return product

    def list_products(self) -> list[Product]:
        """List all products, newest first.

        Returns:
            List of products ordered by created_at descending.
        """
        with self._session() as session:
            stmt = select(Product).order_by(Product.created_at.desc(), Product.id)
            products = list(session.execute(stmt).scalars().all())
            for product in products:
                session.expunge(product)
            return products

    def list_revision_stamps(self) -> list[RevisionStamp]:
        """List version information of every product.

        Only id, revision and updated_at are read, so this stays cheap for
        large collections.

        Returns:
            Stamps ordered by updated_at descending, then id.
        """
        with self._session() as session:
            stmt = select(Product.id, Product.revision, Product.updated_at).order_by(
                Product.updated_at.desc(), Product.id
            )
            return [RevisionStamp(*row) for row in session.execute(stmt).all()]

    def write_product(
        self,
        product_id: str,
        fields: Mapping[str, Any],
        expected_revision: int | None = None,
    ) -> Product | None:
        """Apply fields to a product and bump its revision.

        Untouched fields keep their values. Every accepted write bumps the
        revision and sets updated_at, even if no field value changed.

        Args:
            product_id: Product ID.
            fields: Business field values to set.
            expected_revision: Only write if the stored revision equals this.

        Without expected_revision the write is unconditional: a concurrent
        write that lands first is re-read and the fields are applied on top
        of it.

        Returns:
            Updated Product, or None if the product is missing or its
            revision does not match (including a concurrent write that
            landed first).

        Raises:
            ValueError: If fields contains unknown names.
            StaleDataError: If an unconditional write keeps losing races.
        """
        _check_fields(fields)
        attempts = 1 if expected_revision is not None else UNCONDITIONAL_WRITE_ATTEMPTS

        for attempt in range(1, attempts + 1):
            with self._session() as session:
                product = session.get(Product, product_id)
                if product is None:
                    return None

                if expected_revision is not None and product.revision != expected_revision:
                    return None

                for name, value in fields.items():
                    setattr(product, name, value)
                # updated_at never moves backwards for a record
                product.updated_at = max(utc_now_ms(), product.updated_at)
                flag_modified(product, "updated_at")

                try:
                    session.commit()
                except StaleDataError:
                    session.rollback()
                    logger.info(
                        "Concurrent write detected on product %s (attempt %d/%d)",
                        product_id,
                        attempt,
                        attempts,
                    )
                    if expected_revision is not None:
                        return None
                    if attempt == attempts:
                        raise
                    continue

                session.refresh(product)
                session.expunge(product)
                return product

        return None

    def delete_product(self, product_id: str) -> bool:
        """Delete a product.

        Args:
            product_id: Product ID.

        Returns:
            True if the product was deleted, False if not found.
        """
        with self._session() as session:
            product = session.get(Product, product_id)
            if not product:
                return False
            session.delete(product)
            session.commit()
            return True

    def list_categories(self) -> list[str]:
        """List distinct non-blank categories.

        Returns:
            Sorted category names.
        """
        with self._session() as session:
            stmt = select(Product.category).distinct()
            categories = session.execute(stmt).scalars().all()
            return sorted({c for c in categories if c and c.strip()})
