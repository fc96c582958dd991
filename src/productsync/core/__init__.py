"""Core module - Shared types, checksums, and conflict comparison."""

from productsync.core.checksum import revision_checksum, rolling_hash
from productsync.core.config import ConsistencyOptions, ServerConfig
from productsync.core.conflicts import (
    ConflictDescriptor,
    compare_fields,
    compare_records,
    existence_conflict,
    is_server_newer,
)
from productsync.core.types import (
    BUSINESS_FIELDS,
    TRACKED_FIELDS,
    ConsistencySnapshot,
    ResolutionStrategy,
)

__all__ = [
    # Checksum
    "revision_checksum",
    "rolling_hash",
    # Config
    "ConsistencyOptions",
    "ServerConfig",
    # Conflicts
    "ConflictDescriptor",
    "compare_fields",
    "compare_records",
    "existence_conflict",
    "is_server_newer",
    # Types
    "BUSINESS_FIELDS",
    "TRACKED_FIELDS",
    "ConsistencySnapshot",
    "ResolutionStrategy",
]
