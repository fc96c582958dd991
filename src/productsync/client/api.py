"""HTTP client for productsync server API.

This module provides:
- ProductClient: HTTP client for communicating with the server
- Product CRUD operations
- Version-checked updates, consistency checks and conflict detection

Responses arrive wrapped as {success, data, message}; the client unwraps
the data and turns error envelopes into APIError subclasses.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx
from pydantic.alias_generators import to_camel, to_snake

from productsync.core.config import ServerConfig
from productsync.core.conflicts import ConflictDescriptor
from productsync.core.timestamps import parse_timestamp, to_epoch_ms
from productsync.core.types import BUSINESS_FIELDS, ConsistencySnapshot

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BadRequestError(APIError):
    """Request rejected by validation."""


class ConflictError(APIError):
    """Version conflict detected."""


class NotFoundError(APIError):
    """Resource not found."""


@dataclass
class ProductRecord:
    """Product as seen by the client."""

    id: str
    name: str
    description: str
    price: float
    quantity: int
    category: str
    image_url: str | None = None
    sku: str | None = None
    weight: float | None = None
    dimensions: dict[str, Any] | None = None
    tags: list[str] | None = None
    is_active: bool = True
    min_stock_level: int = 0
    cost_price: float | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    revision: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProductRecord:
        """Create from API response dictionary (camelCase keys)."""
        values = {name: data.get(to_camel(name)) for name in BUSINESS_FIELDS}
        if values["is_active"] is None:
            values["is_active"] = True
        if values["min_stock_level"] is None:
            values["min_stock_level"] = 0
        return cls(
            id=data["id"],
            **values,
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
            revision=data.get("revision", data.get("version")),
        )

    def business_fields(self) -> dict[str, Any]:
        """Business field values keyed by attribute name."""
        return {name: getattr(self, name) for name in BUSINESS_FIELDS}

    def as_dict(self) -> dict[str, Any]:
        """Record keyed by attribute name, including version information."""
        return {
            "id": self.id,
            **self.business_fields(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "revision": self.revision,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the API's camelCase JSON shape."""
        data = {to_camel(name): value for name, value in self.business_fields().items()}
        data["id"] = self.id
        if self.created_at is not None:
            data["createdAt"] = self.created_at.isoformat()
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at.isoformat()
        if self.revision is not None:
            data["revision"] = self.revision
        return data


def _descriptor_from_dict(data: Mapping[str, Any]) -> ConflictDescriptor:
    """Parse a conflict descriptor, restoring attribute-style field names."""
    return ConflictDescriptor(
        record_id=data["recordId"],
        field=to_snake(data["field"]),
        client_value=data.get("clientValue"),
        server_value=data.get("serverValue"),
        last_modified=parse_timestamp(data.get("lastModified")),
    )


@dataclass
class ConflictedProduct:
    """A product with the conflicts detected for it.

    ``data`` is the server copy, or the client's own copy when the product
    no longer exists on the server.
    """

    id: str
    data: dict[str, Any]
    conflicts: list[ConflictDescriptor]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ConflictedProduct:
        """Create from API response dictionary."""
        record = {key: value for key, value in data.items() if key != "conflicts"}
        return cls(
            id=data["id"],
            data=record,
            conflicts=[_descriptor_from_dict(c) for c in data.get("conflicts", [])],
        )


@dataclass
class VersionedUpdate:
    """One item of a bulk update request."""

    product_id: str | None
    fields: dict[str, Any] = field(default_factory=dict)
    revision: int | None = None
    last_modified: datetime | None = None


@dataclass
class BulkUpdateSummary:
    """Result of bulk_update API call."""

    updated: list[ProductRecord]
    conflicts: list[ConflictedProduct]
    errors: list[dict[str, Any]]


def _to_wire(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Convert attribute-named fields to camelCase JSON keys."""
    return {to_camel(name): value for name, value in fields.items()}


def _versioned_body(
    fields: Mapping[str, Any],
    revision: int | None,
    last_modified: datetime | None,
) -> dict[str, Any]:
    body = _to_wire(fields)
    if revision is not None:
        body["revision"] = revision
    if last_modified is not None:
        body["lastModified"] = to_epoch_ms(last_modified)
    return body


def _error_message(response: httpx.Response, default: str) -> str:
    """Extract the error message from an envelope (or FastAPI detail)."""
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or default)
    return default


class ProductClient:
    """HTTP client for productsync server API."""

    def __init__(self, config: ServerConfig) -> None:
        """Initialize the product client.

        Args:
            config: Server connection settings.
        """
        self._config = config
        self._client = httpx.Client(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> ProductClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _handle_response(self, response: httpx.Response) -> Any:
        """Raise on error statuses, otherwise return the envelope's data."""
        if response.status_code == 400:
            raise BadRequestError(_error_message(response, "Bad request"), 400)
        if response.status_code == 404:
            raise NotFoundError(_error_message(response, "Resource not found"), 404)
        if response.status_code == 409:
            raise ConflictError(_error_message(response, "Conflict"), 409)
        if response.status_code >= 400:
            raise APIError(_error_message(response, "Unknown error"), response.status_code)
        return response.json().get("data")

    # === Health check ===

    def health_check(self) -> bool:
        """Check if the server is healthy.

        Returns:
            True if server is healthy.
        """
        try:
            response = self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Product operations ===

    def list_products(self) -> list[ProductRecord]:
        """List all products, newest first."""
        data = self._handle_response(self._client.get("/api/products"))
        return [ProductRecord.from_dict(p) for p in data]

    def get_product(self, product_id: str) -> ProductRecord:
        """Get a product by ID.

        Raises:
            NotFoundError: If product not found.
        """
        data = self._handle_response(self._client.get(f"/api/products/{product_id}"))
        return ProductRecord.from_dict(data)

    def create_product(self, fields: Mapping[str, Any]) -> ProductRecord:
        """Create a product.

        Args:
            fields: Business fields keyed by attribute name.

        Returns:
            Created product (revision 1).

        Raises:
            BadRequestError: If the fields fail validation.
        """
        data = self._handle_response(
            self._client.post("/api/products", json=_to_wire(fields))
        )
        return ProductRecord.from_dict(data)

    def update_product(self, product_id: str, fields: Mapping[str, Any]) -> ProductRecord:
        """Update a product unconditionally (last writer wins).

        Raises:
            NotFoundError: If product not found.
        """
        data = self._handle_response(
            self._client.patch(f"/api/products/{product_id}", json=_to_wire(fields))
        )
        return ProductRecord.from_dict(data)

    def delete_product(self, product_id: str) -> None:
        """Delete a product.

        Raises:
            NotFoundError: If product not found.
        """
        self._handle_response(self._client.delete(f"/api/products/{product_id}"))

    def list_categories(self) -> list[str]:
        """List distinct product categories."""
        result: list[str] = self._handle_response(
            self._client.get("/api/products/categories")
        )
        return result

    # === Optimistic concurrency ===

    def get_product_with_version(self, product_id: str) -> ProductRecord:
        """Get a product including its current revision.

        Raises:
            NotFoundError: If product not found.
        """
        data = self._handle_response(
            self._client.get(f"/api/products/{product_id}/version")
        )
        return ProductRecord.from_dict(data)

    def update_with_version_check(
        self,
        product_id: str,
        fields: Mapping[str, Any],
        revision: int | None = None,
        last_modified: datetime | None = None,
    ) -> ProductRecord:
        """Update a product only if the server copy is still the one we saw.

        Args:
            product_id: Product ID.
            fields: Business fields to change, keyed by attribute name.
            revision: Revision the caller last saw.
            last_modified: updated_at the caller last saw.

        Returns:
            Updated product.

        Raises:
            ConflictError: If the product changed on the server.
            NotFoundError: If product not found.
        """
        data = self._handle_response(
            self._client.put(
                f"/api/products/{product_id}/versioned",
                json=_versioned_body(fields, revision, last_modified),
            )
        )
        return ProductRecord.from_dict(data)

    def check_consistency(self) -> ConsistencySnapshot:
        """Fetch the server's fingerprint of the product collection."""
        data = self._handle_response(self._client.post("/api/products/consistency-check"))
        return ConsistencySnapshot(
            total_records=data["totalRecords"],
            last_modified=parse_timestamp(data.get("lastModified")),
            checksum=data["checksum"],
        )

    def detect_conflicts(
        self, records: Iterable[ProductRecord | Mapping[str, Any]]
    ) -> list[ConflictedProduct]:
        """Ask the server which of the client's copies are out of date.

        Args:
            records: Client copies, as ProductRecord or camelCase dictionaries.

        Returns:
            Conflicted products only.
        """
        payload = [
            r.to_dict() if isinstance(r, ProductRecord) else dict(r) for r in records
        ]
        data = self._handle_response(
            self._client.post("/api/products/detect-conflicts", json=payload)
        )
        return [ConflictedProduct.from_dict(p) for p in data]

    def bulk_update(self, updates: Iterable[VersionedUpdate]) -> BulkUpdateSummary:
        """Apply several versioned updates; each succeeds or conflicts on its own."""
        payload = []
        for update in updates:
            body = _versioned_body(update.fields, update.revision, update.last_modified)
            if update.product_id is not None:
                body["id"] = update.product_id
            payload.append(body)

        data = self._handle_response(
            self._client.patch("/api/products/bulk-update", json=payload)
        )
        summary = BulkUpdateSummary(
            updated=[ProductRecord.from_dict(p) for p in data["updated"]],
            conflicts=[ConflictedProduct.from_dict(c) for c in data["conflicts"]],
            errors=list(data.get("errors", [])),
        )
        if summary.conflicts:
            logger.info(
                "Bulk update: %d updated, %d conflicts",
                len(summary.updated),
                len(summary.conflicts),
            )
        return summary
