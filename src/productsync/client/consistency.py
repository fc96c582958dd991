"""Client-side data consistency service.

This module provides:
- DataConsistencyService: snapshots, consistency checks against the server,
  conflict resolution, validation and optimistic updates with rollback
- DataSnapshot / ConsistencyCheckResult: values produced by the service
"""

from __future__ import annotations

import copy
import json
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar
from urllib.parse import urlparse

from productsync.client.api import ConflictError, ProductClient, ProductRecord
from productsync.client.resolver import ConflictResolver, PromptHandler
from productsync.client.scheduler import ConsistencyPoller
from productsync.core.checksum import rolling_hash
from productsync.core.config import ConsistencyOptions
from productsync.core.conflicts import ConflictDescriptor, compare_fields, is_server_newer
from productsync.core.timestamps import utc_now_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")

ConflictCallback = Callable[[list[ConflictDescriptor]], None]
RefreshCallback = Callable[[list[ProductRecord]], None]


@dataclass(frozen=True)
class DataSnapshot:
    """Deep copy of the client's products at a point in time."""

    products: list[ProductRecord]
    timestamp: datetime
    checksum: str


@dataclass(frozen=True)
class ConsistencyCheckResult:
    """Result of comparing client copies with the server."""

    is_consistent: bool
    conflicts: list[ConflictDescriptor]
    last_checked: datetime


def snapshot_checksum(products: Sequence[ProductRecord]) -> str:
    """Checksum over (id, updated_at) of the products, ordered by id."""
    entries = [
        {
            "id": p.id,
            "updatedAt": (
                p.updated_at.isoformat(timespec="milliseconds") if p.updated_at else None
            ),
        }
        for p in sorted(products, key=lambda p: p.id)
    ]
    return rolling_hash(json.dumps(entries, separators=(",", ":")))


def _is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return bool(parsed.scheme and parsed.netloc)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


class DataConsistencyService:
    """Keeps a client's view of the products consistent with the server."""

    def __init__(
        self,
        client: ProductClient,
        options: ConsistencyOptions | None = None,
        prompt_handler: PromptHandler | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            client: HTTP client for the server.
            options: Service options (defaults when omitted).
            prompt_handler: Handler for the prompt-user strategy.
        """
        self._client = client
        self._options = options or ConsistencyOptions()
        self._resolver = ConflictResolver(
            writer=client,
            strategy=self._options.strategy,
            prompt_handler=prompt_handler,
        )
        self._poller: ConsistencyPoller | None = None
        self._last_snapshot: DataSnapshot | None = None
        self._conflict_callbacks: list[ConflictCallback] = []
        self._refresh_callbacks: list[RefreshCallback] = []

    @property
    def options(self) -> ConsistencyOptions:
        """Service options."""
        return self._options

    @property
    def last_snapshot(self) -> DataSnapshot | None:
        """Most recent snapshot, if any."""
        return self._last_snapshot

    # === Lifecycle ===

    def initialize(self) -> None:
        """Start background refreshes when auto-refresh is enabled."""
        if not self._options.enable_auto_refresh:
            return
        if self._poller is None:
            self._poller = ConsistencyPoller(self.refresh_data, self._options.refresh_interval)
        self._poller.start()

    def cleanup(self) -> None:
        """Stop background refreshes and drop all callbacks."""
        if self._poller is not None:
            self._poller.stop()
            self._poller = None
        self._conflict_callbacks.clear()
        self._refresh_callbacks.clear()

    # === Snapshots and checks ===

    def create_snapshot(self, products: Sequence[ProductRecord]) -> DataSnapshot:
        """Take a deep-copied snapshot of the given products."""
        snapshot = DataSnapshot(
            products=copy.deepcopy(list(products)),
            timestamp=utc_now_ms(),
            checksum=snapshot_checksum(products),
        )
        self._last_snapshot = snapshot
        return snapshot

    def check_consistency(
        self, client_products: Sequence[ProductRecord]
    ) -> ConsistencyCheckResult:
        """Compare client copies with the server's current products.

        Products unknown to the server are ignored here; the server-side
        conflict detection reports those as existence conflicts.

        Raises:
            APIError: If the server cannot be queried.
        """
        server_by_id = {p.id: p for p in self._client.list_products()}

        conflicts: list[ConflictDescriptor] = []
        for client in client_products:
            server = server_by_id.get(client.id)
            if server is None or server.updated_at is None:
                continue
            if is_server_newer(server.updated_at, client.updated_at):
                conflicts.extend(
                    compare_fields(
                        client.id, client.as_dict(), server.as_dict(), server.updated_at
                    )
                )

        if conflicts:
            logger.warning("Consistency check found %d conflicts", len(conflicts))
            self._notify(self._conflict_callbacks, conflicts)

        return ConsistencyCheckResult(
            is_consistent=not conflicts,
            conflicts=conflicts,
            last_checked=utc_now_ms(),
        )

    def refresh_data(self) -> list[ProductRecord]:
        """Fetch server products, snapshot them and notify refresh callbacks."""
        products = self._client.list_products()
        self.create_snapshot(products)
        self._notify(self._refresh_callbacks, products)
        return products

    def resolve_conflicts(
        self,
        conflicts: Sequence[ConflictDescriptor],
        client_products: Sequence[ProductRecord],
        server_products: Sequence[ProductRecord],
    ) -> list[ProductRecord]:
        """Reconcile using the configured strategy."""
        return self._resolver.resolve_conflicts(conflicts, client_products, server_products)

    # === Validation ===

    def validate_product_data(self, product: ProductRecord) -> tuple[bool, list[str]]:
        """Check a product for missing or malformed fields.

        Returns:
            Tuple of (is_valid, errors).
        """
        errors: list[str] = []

        if not product.id:
            errors.append("Product ID is required")
        if not (product.name or "").strip():
            errors.append("Product name is required")
        if not (product.description or "").strip():
            errors.append("Product description is required")
        if not _is_number(product.price) or product.price <= 0:
            errors.append("Product price must be a positive number")
        if not _is_number(product.quantity) or product.quantity < 0:
            errors.append("Product quantity must be a non-negative number")
        if not (product.category or "").strip():
            errors.append("Product category is required")

        if product.image_url and not _is_valid_url(product.image_url):
            errors.append("Product image URL must be a valid URL")
        if product.weight is not None and (not _is_number(product.weight) or product.weight < 0):
            errors.append("Product weight must be a non-negative number")
        if product.cost_price is not None and (
            not _is_number(product.cost_price) or product.cost_price < 0
        ):
            errors.append("Product cost price must be a non-negative number")

        if product.created_at is None:
            errors.append("Product creation timestamp is required")
        if product.updated_at is None:
            errors.append("Product update timestamp is required")

        return not errors, errors

    # === Optimistic updates ===

    def perform_optimistic_update(
        self,
        operation: Callable[[], T],
        rollback: Callable[[], None],
        retries: int | None = None,
    ) -> T:
        """Run an operation whose effects were already applied locally.

        On failure the local change is rolled back and the operation retried
        after ``retry_delay``. A ConflictError is never retried: the server
        copy moved on and repeating the same write cannot succeed.

        Args:
            operation: Server call to perform.
            rollback: Undoes the local optimistic change.
            retries: Retry attempts (defaults to options.max_retries).

        Returns:
            Result of the operation.

        Raises:
            The last exception if all attempts fail.
        """
        max_retries = self._options.max_retries if retries is None else retries

        for attempt in range(max_retries + 1):
            try:
                return operation()
            except ConflictError:
                rollback()
                raise
            except Exception as e:
                rollback()
                if attempt == max_retries:
                    logger.error("Optimistic update failed after %d attempts: %s", attempt + 1, e)
                    raise
                logger.warning(
                    "Optimistic update attempt %d/%d failed: %s. Retrying in %.1fs...",
                    attempt + 1,
                    max_retries + 1,
                    e,
                    self._options.retry_delay,
                )
                time.sleep(self._options.retry_delay)

        raise RuntimeError("Unexpected retry loop exit")

    # === Callbacks ===

    def on_conflict_detected(self, callback: ConflictCallback) -> None:
        """Register a callback for detected conflicts."""
        self._conflict_callbacks.append(callback)

    def on_data_refresh(self, callback: RefreshCallback) -> None:
        """Register a callback for refreshed data."""
        self._refresh_callbacks.append(callback)

    def remove_conflict_callback(self, callback: ConflictCallback) -> None:
        """Remove a conflict callback (no-op if not registered)."""
        if callback in self._conflict_callbacks:
            self._conflict_callbacks.remove(callback)

    def remove_refresh_callback(self, callback: RefreshCallback) -> None:
        """Remove a refresh callback (no-op if not registered)."""
        if callback in self._refresh_callbacks:
            self._refresh_callbacks.remove(callback)

    def _notify(self, callbacks: Sequence[Callable[[Any], None]], payload: Any) -> None:
        for callback in list(callbacks):
            try:
                callback(payload)
            except Exception:
                logger.exception("Error in consistency callback")
