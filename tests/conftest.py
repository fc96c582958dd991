"""Shared fixtures: an in-memory product store."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

import pytest

from productsync.core.timestamps import utc_now_ms
from productsync.server.models import Product
from productsync.server.store import RevisionStamp


def _copy(product: Product) -> Product:
    """Detached copy, like the rows Database hands out."""
    return Product(**product.as_dict())


class InMemoryProductStore:
    """RecordStore kept in a dict, with a controllable clock."""

    def __init__(self) -> None:
        self._products: dict[str, Product] = {}
        self.writes = 0
        self.clock = utc_now_ms()

    def _tick(self) -> None:
        self.clock += timedelta(milliseconds=1)

    def create_product(self, fields: Mapping[str, Any]) -> Product:
        self._tick()
        values = {"is_active": True, "min_stock_level": 0, **fields}
        product = Product(
            id=str(uuid.uuid4()),
            created_at=self.clock,
            updated_at=self.clock,
            revision=1,
            **values,
        )
        self._products[product.id] = product
        return _copy(product)

    def get_product(self, product_id: str) -> Product | None:
        product = self._products.get(product_id)
        return _copy(product) if product else None

    def list_products(self) -> list[Product]:
        products = sorted(
            self._products.values(), key=lambda p: (p.created_at, p.id), reverse=True
        )
        return [_copy(p) for p in products]

    def list_revision_stamps(self) -> list[RevisionStamp]:
        stamps = [
            RevisionStamp(p.id, p.revision, p.updated_at) for p in self._products.values()
        ]
        stamps.sort(key=lambda s: s.id)
        stamps.sort(key=lambda s: s.updated_at, reverse=True)
        return stamps

    def write_product(
        self,
        product_id: str,
        fields: Mapping[str, Any],
        expected_revision: int | None = None,
    ) -> Product | None:
        product = self._products.get(product_id)
        if product is None:
            return None
        if expected_revision is not None and product.revision != expected_revision:
            return None
        self._tick()
        for name, value in fields.items():
            setattr(product, name, value)
        product.revision += 1
        product.updated_at = self.clock
        self.writes += 1
        return _copy(product)

    def delete_product(self, product_id: str) -> bool:
        return self._products.pop(product_id, None) is not None

    def list_categories(self) -> list[str]:
        return sorted({p.category for p in self._products.values() if p.category.strip()})


WIDGET = {
    "name": "Widget",
    "description": "A useful widget",
    "price": 10.0,
    "quantity": 5,
    "category": "tools",
}


@pytest.fixture
def store() -> InMemoryProductStore:
    """Empty in-memory store."""
    return InMemoryProductStore()


@pytest.fixture
def widget_fields() -> dict[str, Any]:
    """Business fields of the canonical test product."""
    return dict(WIDGET)
