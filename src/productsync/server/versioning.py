"""Version-checked writes.

Revision comparison is the primary conflict signal (total order, immune to
clock skew). Timestamp comparison is the fallback for callers that only track
time. Callers may supply either check, both, or neither; neither means an
unconditional overwrite.

Outcomes are returned as values (Updated, VersionConflict, RecordNotFound),
never raised.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from productsync.core.conflicts import ConflictDescriptor, existence_conflict
from productsync.core.timestamps import as_utc, parse_timestamp
from productsync.core.types import UPDATED_AT_FIELD, VERSION_FIELD
from productsync.server.conflicts import ConflictReport
from productsync.server.models import Product
from productsync.server.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Updated:
    """The write was accepted."""

    product: Product


@dataclass(frozen=True)
class VersionConflict:
    """The write was refused because the server copy moved on."""

    product_id: str
    current_revision: int
    last_modified: datetime
    expected_revision: int | None = None
    believed_last_modified: datetime | None = None

    @property
    def message(self) -> str:
        """Human-readable explanation."""
        if self.expected_revision is not None:
            return (
                "Product has been modified by another user. "
                f"Expected version {self.expected_revision}, "
                f"but current version is {self.current_revision}. "
                "Please refresh and try again."
            )
        return (
            "Product has been modified more recently on the server. "
            "Please refresh and try again."
        )


@dataclass(frozen=True)
class RecordNotFound:
    """The referenced product does not exist."""

    product_id: str

    @property
    def message(self) -> str:
        """Human-readable explanation."""
        return f"Product with ID {self.product_id} not found"


UpdateOutcome = Updated | VersionConflict | RecordNotFound


@dataclass
class VersionedPatch:
    """One item of a bulk update."""

    product_id: str | None
    fields: dict[str, Any] = field(default_factory=dict)
    revision: int | None = None
    last_modified: datetime | int | None = None


@dataclass
class BulkItemError:
    """A bulk item that could not be processed at all."""

    index: int
    product_id: str | None
    message: str


@dataclass
class BulkUpdateResult:
    """Per-item outcome of a bulk update."""

    updated: list[Product] = field(default_factory=list)
    conflicts: list[ConflictReport] = field(default_factory=list)
    errors: list[BulkItemError] = field(default_factory=list)


class VersionCheckedWriter:
    """Conditional product updates against a RecordStore."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def update(self, product_id: str, patch: Mapping[str, Any]) -> UpdateOutcome:
        """Unconditional update (last writer wins)."""
        return self.update_with_version_check(product_id, patch)

    def update_with_version_check(
        self,
        product_id: str,
        patch: Mapping[str, Any],
        believed_revision: int | None = None,
        believed_last_modified: datetime | int | None = None,
    ) -> UpdateOutcome:
        """Update a product only if the caller's belief is current.

        Args:
            product_id: Product ID.
            patch: Business fields to set; other fields keep their values.
            believed_revision: Revision the caller last saw.
            believed_last_modified: updated_at the caller last saw (datetime
                or epoch milliseconds).

        Returns:
            Updated, VersionConflict or RecordNotFound. A refused write leaves
            the stored product untouched.

        Raises:
            ValueError: If patch contains unknown fields.
        """
        current = self._store.get_product(product_id)
        if current is None:
            return RecordNotFound(product_id)

        if believed_revision is not None and current.revision != believed_revision:
            logger.warning(
                "Version conflict on product %s: expected %d, current %d",
                product_id,
                believed_revision,
                current.revision,
            )
            return VersionConflict(
                product_id=product_id,
                current_revision=current.revision,
                last_modified=current.updated_at,
                expected_revision=believed_revision,
            )

        believed_time = parse_timestamp(believed_last_modified)
        if believed_time is not None and as_utc(current.updated_at) > believed_time:
            logger.warning(
                "Timestamp conflict on product %s: server modified at %s, client saw %s",
                product_id,
                current.updated_at.isoformat(),
                believed_time.isoformat(),
            )
            return VersionConflict(
                product_id=product_id,
                current_revision=current.revision,
                last_modified=current.updated_at,
                believed_last_modified=believed_time,
            )

        checked = believed_revision is not None or believed_time is not None
        product = self._store.write_product(
            product_id,
            patch,
            expected_revision=current.revision if checked else None,
        )
        if product is not None:
            return Updated(product)

        latest = self._store.get_product(product_id)
        if latest is None or not checked:
            # Unconditional writes only fail when the record is gone
            return RecordNotFound(product_id)

        # Lost a race between the read above and the write
        logger.warning("Product %s changed concurrently, write refused", product_id)
        return VersionConflict(
            product_id=product_id,
            current_revision=latest.revision,
            last_modified=latest.updated_at,
            expected_revision=(
                believed_revision if believed_revision is not None else current.revision
            ),
            believed_last_modified=believed_time,
        )

    def bulk_update(
        self, patches: Iterable[VersionedPatch | BulkItemError]
    ) -> BulkUpdateResult:
        """Apply versioned patches independently.

        One failing item never aborts the batch: successes, conflicts and
        malformed items are aggregated separately. Items that already failed
        to parse arrive as BulkItemError and are recorded as given.
        """
        result = BulkUpdateResult()

        for index, patch in enumerate(patches):
            if isinstance(patch, BulkItemError):
                result.errors.append(patch)
                continue

            if not patch.product_id:
                result.errors.append(
                    BulkItemError(index, None, "Product ID is required for bulk update")
                )
                continue

            try:
                outcome = self.update_with_version_check(
                    patch.product_id,
                    patch.fields,
                    believed_revision=patch.revision,
                    believed_last_modified=patch.last_modified,
                )
            except ValueError as e:
                result.errors.append(BulkItemError(index, patch.product_id, str(e)))
                continue

            if isinstance(outcome, Updated):
                result.updated.append(outcome.product)
            elif isinstance(outcome, VersionConflict):
                result.conflicts.append(self._conflict_report(patch, outcome))
            else:
                result.conflicts.append(_existence_report(patch))

        logger.info(
            "Bulk update: %d updated, %d conflicts, %d errors",
            len(result.updated),
            len(result.conflicts),
            len(result.errors),
        )
        return result

    def _conflict_report(self, patch: VersionedPatch, outcome: VersionConflict) -> ConflictReport:
        """Describe a refused bulk item against the current server record."""
        assert patch.product_id is not None
        server = self._store.get_product(patch.product_id)
        if server is None:
            return _existence_report(patch)

        if outcome.expected_revision is not None:
            descriptor = ConflictDescriptor(
                record_id=server.id,
                field=VERSION_FIELD,
                client_value=outcome.expected_revision,
                server_value=server.revision,
                last_modified=server.updated_at,
            )
        else:
            descriptor = ConflictDescriptor(
                record_id=server.id,
                field=UPDATED_AT_FIELD,
                client_value=outcome.believed_last_modified,
                server_value=server.updated_at,
                last_modified=server.updated_at,
            )
        return ConflictReport(record=server.as_dict(), conflicts=[descriptor])


def _existence_report(patch: VersionedPatch) -> ConflictReport:
    """Report a bulk item whose product no longer exists."""
    assert patch.product_id is not None
    return ConflictReport(
        record={"id": patch.product_id, **patch.fields},
        conflicts=[existence_conflict(patch.product_id)],
    )
