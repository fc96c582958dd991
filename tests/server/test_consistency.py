"""Tests for the consistency auditor."""

from __future__ import annotations

from typing import Any

from productsync.core.checksum import revision_checksum, rolling_hash
from productsync.server.consistency import ConsistencyAuditor
from productsync.server.store import RevisionStamp


class StampListStore:
    """Store stub that only serves revision stamps, in the order given."""

    def __init__(self, stamps: list[RevisionStamp]) -> None:
        self._stamps = stamps

    def list_revision_stamps(self) -> list[RevisionStamp]:
        return list(self._stamps)


class TestCheckConsistency:
    """Tests for ConsistencyAuditor.check_consistency."""

    def test_empty_store(self, store: Any) -> None:
        snapshot = ConsistencyAuditor(store).check_consistency()
        assert snapshot.total_records == 0
        assert snapshot.last_modified is None
        assert snapshot.checksum == rolling_hash("") == "0"

    def test_counts_and_last_modified(self, store: Any, widget_fields: dict[str, Any]) -> None:
        store.create_product(widget_fields)
        newest = store.create_product(widget_fields)

        snapshot = ConsistencyAuditor(store).check_consistency()

        assert snapshot.total_records == 2
        assert snapshot.last_modified == newest.updated_at

    def test_checksum_over_ordered_stamps(
        self, store: Any, widget_fields: dict[str, Any]
    ) -> None:
        """Checksum hashes stamps newest first."""
        older = store.create_product(widget_fields)
        newer = store.create_product(widget_fields)

        snapshot = ConsistencyAuditor(store).check_consistency()

        expected = revision_checksum(
            [
                (newer.id, 1, newer.updated_at),
                (older.id, 1, older.updated_at),
            ]
        )
        assert snapshot.checksum == expected

    def test_checksum_independent_of_store_order(
        self, store: Any, widget_fields: dict[str, Any]
    ) -> None:
        """Same stamps in a different order give the same checksum."""
        store.create_product(widget_fields)
        store.create_product(widget_fields)
        stamps = store.list_revision_stamps()

        forward = ConsistencyAuditor(StampListStore(stamps)).check_consistency()
        backward = ConsistencyAuditor(StampListStore(stamps[::-1])).check_consistency()

        assert forward == backward

    def test_write_changes_checksum(self, store: Any, widget_fields: dict[str, Any]) -> None:
        product = store.create_product(widget_fields)
        auditor = ConsistencyAuditor(store)
        before = auditor.check_consistency()

        store.write_product(product.id, {})
        after = auditor.check_consistency()

        assert before.total_records == after.total_records == 1
        assert before.checksum != after.checksum
        assert after.last_modified > before.last_modified

    def test_unchanged_store_is_stable(
        self, store: Any, widget_fields: dict[str, Any]
    ) -> None:
        store.create_product(widget_fields)
        auditor = ConsistencyAuditor(store)
        assert auditor.check_consistency() == auditor.check_consistency()
