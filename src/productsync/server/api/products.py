"""Product API routes.

Plain CRUD plus the optimistic-concurrency endpoints:
- GET  /api/products/{id}/version       full record including revision
- PUT  /api/products/{id}/versioned     version-checked update (409 on conflict)
- POST /api/products/consistency-check  collection fingerprint
- POST /api/products/detect-conflicts   compare client copies with the store
- PATCH /api/products/bulk-update       independent versioned updates
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError

from productsync.server.api.deps import get_auditor, get_db, get_detector, get_writer
from productsync.server.conflicts import ConflictDetector
from productsync.server.consistency import ConsistencyAuditor
from productsync.server.database import Database
from productsync.server.models import Product
from productsync.server.schemas import (
    ApiResponse,
    BulkUpdateResponse,
    ConflictedProductResponse,
    ConsistencyResponse,
    ProductCreateRequest,
    ProductResponse,
    ProductSnapshot,
    ProductUpdateRequest,
    ProductVersionedUpdateRequest,
    bulk_result_to_response,
    describe_validation_errors,
    product_to_response,
    report_to_response,
    snapshot_to_response,
)
from productsync.server.versioning import (
    BulkItemError,
    RecordNotFound,
    UpdateOutcome,
    VersionConflict,
    VersionCheckedWriter,
    VersionedPatch,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])


def _not_found(product_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Product with ID {product_id} not found",
    )


def _unwrap(outcome: UpdateOutcome) -> Product:
    """Turn a write outcome into a product or an HTTP error."""
    if isinstance(outcome, RecordNotFound):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=outcome.message)
    if isinstance(outcome, VersionConflict):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=outcome.message)
    return outcome.product


@router.post(
    "",
    response_model=ApiResponse[ProductResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_product(
    request: ProductCreateRequest,
    db: Database = Depends(get_db),
) -> ApiResponse[ProductResponse]:
    """Create a product."""
    product = db.create_product(request.fields())
    logger.info("Created product %s (%s)", product.id, product.name)
    return ApiResponse(data=product_to_response(product), message="Product created successfully")


@router.get("", response_model=ApiResponse[list[ProductResponse]])
def list_products(db: Database = Depends(get_db)) -> ApiResponse[list[ProductResponse]]:
    """List all products, newest first."""
    return ApiResponse(data=[product_to_response(p) for p in db.list_products()])


@router.get("/categories", response_model=ApiResponse[list[str]])
def list_categories(db: Database = Depends(get_db)) -> ApiResponse[list[str]]:
    """List distinct product categories."""
    return ApiResponse(data=db.list_categories())


@router.post("/consistency-check", response_model=ApiResponse[ConsistencyResponse])
def check_consistency(
    auditor: ConsistencyAuditor = Depends(get_auditor),
) -> ApiResponse[ConsistencyResponse]:
    """Fingerprint the product collection."""
    return ApiResponse(data=snapshot_to_response(auditor.check_consistency()))


@router.post(
    "/detect-conflicts",
    response_model=ApiResponse[list[ConflictedProductResponse]],
)
def detect_conflicts(
    client_products: list[ProductSnapshot],
    detector: ConflictDetector = Depends(get_detector),
) -> ApiResponse[list[ConflictedProductResponse]]:
    """Compare client copies with the store.

    Only products with at least one conflict are returned.
    """
    reports = detector.detect_conflict_reports(p.record() for p in client_products)
    return ApiResponse(data=[report_to_response(r) for r in reports])


@router.patch("/bulk-update", response_model=ApiResponse[BulkUpdateResponse])
def bulk_update(
    updates: list[Any] = Body(),
    writer: VersionCheckedWriter = Depends(get_writer),
) -> ApiResponse[BulkUpdateResponse]:
    """Apply versioned updates independently; conflicts are reported per item.

    Items are validated one by one so a malformed item is reported in
    ``errors`` without rejecting the rest of the batch.
    """
    result = writer.bulk_update(_bulk_item(index, item) for index, item in enumerate(updates))
    return ApiResponse(data=bulk_result_to_response(result))


def _bulk_item(index: int, item: Any) -> VersionedPatch | BulkItemError:
    """Validate one bulk item."""
    try:
        update = ProductVersionedUpdateRequest.model_validate(item)
    except ValidationError as e:
        raw_id = item.get("id") if isinstance(item, dict) else None
        product_id = raw_id if isinstance(raw_id, str) else None
        problems = describe_validation_errors(e.errors())
        logger.info("Rejected bulk item %d (%s): %s", index, product_id, problems)
        return BulkItemError(index, product_id, f"Validation failed: {problems}")

    return VersionedPatch(
        product_id=update.id,
        fields=update.patch(),
        revision=update.revision,
        last_modified=update.last_modified,
    )


@router.get("/{product_id}", response_model=ApiResponse[ProductResponse])
def get_product(product_id: str, db: Database = Depends(get_db)) -> ApiResponse[ProductResponse]:
    """Get a product by ID."""
    product = db.get_product(product_id)
    if product is None:
        raise _not_found(product_id)
    return ApiResponse(data=product_to_response(product))


@router.get("/{product_id}/version", response_model=ApiResponse[ProductResponse])
def get_product_with_version(
    product_id: str, db: Database = Depends(get_db)
) -> ApiResponse[ProductResponse]:
    """Get a product with its revision for later version-checked updates."""
    product = db.get_product(product_id)
    if product is None:
        raise _not_found(product_id)
    return ApiResponse(data=product_to_response(product))


@router.patch("/{product_id}", response_model=ApiResponse[ProductResponse])
def update_product(
    product_id: str,
    request: ProductUpdateRequest,
    writer: VersionCheckedWriter = Depends(get_writer),
) -> ApiResponse[ProductResponse]:
    """Update a product unconditionally."""
    product = _unwrap(writer.update(product_id, request.patch()))
    return ApiResponse(data=product_to_response(product), message="Product updated successfully")


@router.put("/{product_id}/versioned", response_model=ApiResponse[ProductResponse])
def update_product_versioned(
    product_id: str,
    request: ProductVersionedUpdateRequest,
    writer: VersionCheckedWriter = Depends(get_writer),
) -> ApiResponse[ProductResponse]:
    """Update a product only if the client's revision/timestamp is current."""
    product = _unwrap(
        writer.update_with_version_check(
            product_id,
            request.patch(),
            believed_revision=request.revision,
            believed_last_modified=request.last_modified,
        )
    )
    return ApiResponse(data=product_to_response(product), message="Product updated successfully")


@router.delete("/{product_id}", response_model=ApiResponse[None])
def delete_product(product_id: str, db: Database = Depends(get_db)) -> ApiResponse[None]:
    """Delete a product."""
    if not db.delete_product(product_id):
        raise _not_found(product_id)
    logger.info("Deleted product %s", product_id)
    return ApiResponse(data=None, message="Product deleted successfully")
