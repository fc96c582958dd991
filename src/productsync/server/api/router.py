"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from productsync.server.api import health, products

router = APIRouter()

# Include all API routers
router.include_router(health.router)
router.include_router(products.router)
