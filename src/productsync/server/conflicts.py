"""Server-side conflict detection.

Compares records a client believes in against the authoritative store.
Pure read-only: nothing is written.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from productsync.core.conflicts import ConflictDescriptor, compare_records, existence_conflict
from productsync.server.models import Product
from productsync.server.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class ConflictReport:
    """A record together with the conflicts detected on it.

    ``record`` is the server record keyed by attribute name, or the client's
    own data when the record no longer exists on the server.
    """

    record: dict[str, Any]
    conflicts: list[ConflictDescriptor] = field(default_factory=list)


class ConflictDetector:
    """Detects writes that would clobber a newer server state."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def compare_one(
        self, client_record: Mapping[str, Any], server_record: Product
    ) -> list[ConflictDescriptor]:
        """Compare one client record with its server counterpart."""
        return compare_records(server_record.id, client_record, server_record.as_dict())

    def detect_conflict_reports(
        self, client_records: Iterable[Mapping[str, Any]]
    ) -> list[ConflictReport]:
        """Detect conflicts, grouped per record.

        Client records without an ``id`` are skipped. A record missing on the
        server yields a single ``existence`` conflict (possible delete-vs-update
        race).

        Returns:
            Reports for records with at least one conflict.
        """
        reports: list[ConflictReport] = []
        for client_record in client_records:
            record_id = client_record.get("id")
            if not record_id:
                continue

            server_record = self._store.get_product(record_id)
            if server_record is None:
                logger.warning("Product %s referenced by client no longer exists", record_id)
                reports.append(
                    ConflictReport(
                        record=dict(client_record),
                        conflicts=[existence_conflict(record_id)],
                    )
                )
                continue

            conflicts = self.compare_one(client_record, server_record)
            if conflicts:
                reports.append(ConflictReport(record=server_record.as_dict(), conflicts=conflicts))

        if reports:
            logger.info("Detected conflicts on %d product(s)", len(reports))
        return reports

    def detect_conflicts(
        self, client_records: Iterable[Mapping[str, Any]]
    ) -> list[ConflictDescriptor]:
        """Detect conflicts as one flat list across all client records."""
        return [
            conflict
            for report in self.detect_conflict_reports(client_records)
            for conflict in report.conflicts
        ]
