"""Pydantic schemas for API request/response models.

JSON keys are camelCase on the wire; attributes stay snake_case.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from productsync.core.conflicts import ConflictDescriptor
from productsync.core.timestamps import as_utc
from productsync.core.types import ConsistencySnapshot
from productsync.server.conflicts import ConflictReport
from productsync.server.models import Product
from productsync.server.versioning import BulkItemError, BulkUpdateResult

DataT = TypeVar("DataT")

# Columns that cannot hold NULL
_NOT_NULL_FIELDS = (
    "name",
    "description",
    "price",
    "quantity",
    "category",
    "is_active",
    "min_stock_level",
)


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === Envelope ===


class ApiResponse(BaseModel, Generic[DataT]):
    """Envelope around every response."""

    success: bool = True
    data: DataT
    message: str | None = None


# === Product schemas ===


class Dimensions(CamelModel):
    """Physical dimensions of a product."""

    length: float
    width: float
    height: float
    unit: Literal["cm", "in"]


class ProductCreateRequest(CamelModel):
    """Request body for product creation."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    price: float = Field(gt=0)
    quantity: int = Field(ge=0)
    category: str = Field(min_length=1, max_length=100)
    image_url: str | None = Field(default=None, max_length=500)
    sku: str | None = Field(default=None, max_length=50)
    weight: float | None = Field(default=None, ge=0)
    dimensions: Dimensions | None = None
    tags: list[str] | None = None
    is_active: bool = True
    min_stock_level: int = Field(default=0, ge=0)
    cost_price: float | None = Field(default=None, ge=0)
    notes: str | None = None

    def fields(self) -> dict[str, Any]:
        """Business field values for the store."""
        return self.model_dump()


class ProductUpdateRequest(CamelModel):
    """Request body for a plain (unconditional) update.

    Only fields present in the body are changed.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1)
    price: float | None = Field(default=None, gt=0)
    quantity: int | None = Field(default=None, ge=0)
    category: str | None = Field(default=None, min_length=1, max_length=100)
    image_url: str | None = Field(default=None, max_length=500)
    sku: str | None = Field(default=None, max_length=50)
    weight: float | None = Field(default=None, ge=0)
    dimensions: Dimensions | None = None
    tags: list[str] | None = None
    is_active: bool | None = None
    min_stock_level: int | None = Field(default=None, ge=0)
    cost_price: float | None = Field(default=None, ge=0)
    notes: str | None = None

    @field_validator(*_NOT_NULL_FIELDS, mode="before")
    @classmethod
    def _reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("must not be null")
        return value

    def patch(self) -> dict[str, Any]:
        """Business fields explicitly set in the request."""
        return self.model_dump(
            exclude_unset=True, exclude={"id", "revision", "last_modified"}
        )


class ProductVersionedUpdateRequest(ProductUpdateRequest):
    """Request body for a version-checked update (also a bulk item)."""

    id: str | None = None
    revision: int | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("revision", "version")
    )
    last_modified: int | None = None  # Epoch milliseconds


class ProductSnapshot(CamelModel):
    """A client's (possibly partial) copy of a product."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    revision: int | None = Field(
        default=None, validation_alias=AliasChoices("revision", "version")
    )
    updated_at: datetime | None = None
    name: str | None = None
    description: str | None = None
    price: float | None = None
    quantity: int | None = None
    category: str | None = None
    image_url: str | None = None
    sku: str | None = None
    weight: float | None = None
    dimensions: Dimensions | None = None
    tags: list[str] | None = None
    is_active: bool | None = None
    min_stock_level: int | None = None
    cost_price: float | None = None
    notes: str | None = None

    def record(self) -> dict[str, Any]:
        """Fields the client actually sent, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


class ProductResponse(CamelModel):
    """Product in responses."""

    id: str
    name: str
    description: str
    price: float
    quantity: int
    category: str
    image_url: str | None
    sku: str | None
    weight: float | None
    dimensions: Dimensions | None
    tags: list[str] | None
    is_active: bool
    min_stock_level: int
    cost_price: float | None
    notes: str | None
    created_at: str
    updated_at: str
    revision: int


# === Conflict schemas ===


class ConflictDescriptorResponse(CamelModel):
    """One conflict in responses."""

    record_id: str
    field: str
    client_value: Any
    server_value: Any
    last_modified: str | None


class ConflictedProductResponse(CamelModel):
    """A product (server copy, or client copy if deleted) with its conflicts."""

    id: str
    name: str | None = None
    description: str | None = None
    price: float | None = None
    quantity: int | None = None
    category: str | None = None
    image_url: str | None = None
    sku: str | None = None
    weight: float | None = None
    dimensions: Dimensions | None = None
    tags: list[str] | None = None
    is_active: bool | None = None
    min_stock_level: int | None = None
    cost_price: float | None = None
    notes: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    revision: int | None = None
    conflicts: list[ConflictDescriptorResponse]


class BulkItemErrorResponse(CamelModel):
    """A bulk item rejected as malformed or invalid."""

    index: int
    id: str | None
    message: str


class BulkUpdateResponse(CamelModel):
    """Response for bulk update."""

    updated: list[ProductResponse]
    conflicts: list[ConflictedProductResponse]
    errors: list[BulkItemErrorResponse]


class ConsistencyResponse(CamelModel):
    """Fingerprint of the product collection."""

    total_records: int
    last_modified: str | None
    checksum: str


# === Health schema ===


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


# === Converters ===


def describe_validation_errors(errors: Iterable[Mapping[str, Any]]) -> str:
    """Join pydantic error entries as 'loc: msg; loc: msg'."""
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in errors
    )


def _isoformat(value: datetime | None) -> str | None:
    return as_utc(value).isoformat(timespec="milliseconds") if value else None


def _json_value(value: Any) -> Any:
    """Render datetimes inside conflict values as ISO strings."""
    if isinstance(value, datetime):
        return _isoformat(value)
    return value


def product_to_response(product: Product) -> ProductResponse:
    """Convert Product to response model."""
    return ProductResponse(
        **product.business_fields(),
        id=product.id,
        created_at=_isoformat(product.created_at),
        updated_at=_isoformat(product.updated_at),
        revision=product.revision,
    )


def conflict_to_response(conflict: ConflictDescriptor) -> ConflictDescriptorResponse:
    """Convert ConflictDescriptor to response model."""
    return ConflictDescriptorResponse(
        record_id=conflict.record_id,
        field=to_camel(conflict.field),
        client_value=_json_value(conflict.client_value),
        server_value=_json_value(conflict.server_value),
        last_modified=_isoformat(conflict.last_modified),
    )


def report_to_response(report: ConflictReport) -> ConflictedProductResponse:
    """Convert ConflictReport to response model."""
    record = {
        name: _json_value(value)
        for name, value in report.record.items()
        if name in ConflictedProductResponse.model_fields
    }
    return ConflictedProductResponse(
        **record,
        conflicts=[conflict_to_response(c) for c in report.conflicts],
    )


def bulk_error_to_response(error: BulkItemError) -> BulkItemErrorResponse:
    """Convert BulkItemError to response model."""
    return BulkItemErrorResponse(index=error.index, id=error.product_id, message=error.message)


def bulk_result_to_response(result: BulkUpdateResult) -> BulkUpdateResponse:
    """Convert BulkUpdateResult to response model."""
    return BulkUpdateResponse(
        updated=[product_to_response(p) for p in result.updated],
        conflicts=[report_to_response(r) for r in result.conflicts],
        errors=[bulk_error_to_response(e) for e in result.errors],
    )


def snapshot_to_response(snapshot: ConsistencySnapshot) -> ConsistencyResponse:
    """Convert ConsistencySnapshot to response model."""
    return ConsistencyResponse(
        total_records=snapshot.total_records,
        last_modified=_isoformat(snapshot.last_modified),
        checksum=snapshot.checksum,
    )
