"""Shared types for productsync.

This module defines types and enums used by both client and server.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ResolutionStrategy(str, Enum):
    """How a client reconciles conflicting copies of a product."""

    SERVER_WINS = "server-wins"
    CLIENT_WINS = "client-wins"
    MERGE = "merge"
    PROMPT_USER = "prompt-user"


# Business fields of a product, by attribute name
BUSINESS_FIELDS: tuple[str, ...] = (
    "name",
    "description",
    "price",
    "quantity",
    "category",
    "image_url",
    "sku",
    "weight",
    "dimensions",
    "tags",
    "is_active",
    "min_stock_level",
    "cost_price",
    "notes",
)

# Fields compared field-by-field by conflict detection
TRACKED_FIELDS: tuple[str, ...] = (
    "name",
    "description",
    "price",
    "quantity",
    "category",
    "image_url",
    "sku",
    "weight",
    "is_active",
    "min_stock_level",
    "cost_price",
    "notes",
)

# Sentinel conflict fields for whole-record mismatches
EXISTENCE_FIELD = "existence"
VERSION_FIELD = "version"
UPDATED_AT_FIELD = "updated_at"


@dataclass(frozen=True)
class ConsistencySnapshot:
    """Fingerprint of the whole product collection."""

    total_records: int
    last_modified: datetime | None
    checksum: str
