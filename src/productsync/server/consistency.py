"""Consistency auditing for the product collection.

Lets a client decide between "poll full data" and "skip" without
transferring the collection: the snapshot only changes when some product's
(id, revision, updated_at) changes.
"""

from __future__ import annotations

import logging

from productsync.core.checksum import revision_checksum
from productsync.core.timestamps import to_epoch_ms
from productsync.core.types import ConsistencySnapshot
from productsync.server.store import RecordStore

logger = logging.getLogger(__name__)


class ConsistencyAuditor:
    """Computes ConsistencySnapshots from a RecordStore."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def check_consistency(self) -> ConsistencySnapshot:
        """Fingerprint the current collection.

        Stamps are ordered by updated_at descending with id as the tie-break
        before hashing, so identical store content always hashes identically
        whatever order the store returns it in.

        Returns:
            Snapshot with count, newest updated_at (None if empty) and checksum.
        """
        stamps = sorted(
            self._store.list_revision_stamps(),
            key=lambda stamp: (-to_epoch_ms(stamp.updated_at), stamp.id),
        )
        snapshot = ConsistencySnapshot(
            total_records=len(stamps),
            last_modified=stamps[0].updated_at if stamps else None,
            checksum=revision_checksum(stamps),
        )
        logger.debug(
            "Consistency check: %d products, checksum %s",
            snapshot.total_records,
            snapshot.checksum,
        )
        return snapshot
