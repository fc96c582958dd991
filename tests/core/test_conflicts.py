"""Tests for conflict comparison."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from productsync.core.conflicts import (
    compare_fields,
    compare_records,
    existence_conflict,
    is_server_newer,
)

SERVER_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


def make_server(**overrides: Any) -> dict[str, Any]:
    """Server record keyed by attribute name."""
    record = {
        "id": "p1",
        "name": "Widget",
        "price": 12.0,
        "quantity": 5,
        "tags": ["a"],
        "revision": 2,
        "updated_at": SERVER_TIME,
    }
    record.update(overrides)
    return record


class TestIsServerNewer:
    """Tests for is_server_newer."""

    def test_newer(self) -> None:
        assert is_server_newer(SERVER_TIME, SERVER_TIME - timedelta(seconds=1))

    def test_equal_is_not_newer(self) -> None:
        assert not is_server_newer(SERVER_TIME, SERVER_TIME)

    def test_unknown_client_time(self) -> None:
        """Without a client timestamp the server counts as newer."""
        assert is_server_newer(SERVER_TIME, None)


class TestCompareFields:
    """Tests for compare_fields."""

    def test_only_supplied_fields_compared(self) -> None:
        """Fields absent from the client record never conflict."""
        conflicts = compare_fields("p1", {"price": 10.0}, make_server(), SERVER_TIME)
        assert [c.field for c in conflicts] == ["price"]
        assert conflicts[0].client_value == 10.0
        assert conflicts[0].server_value == 12.0
        assert conflicts[0].last_modified == SERVER_TIME

    def test_equal_values(self) -> None:
        """Equal values produce nothing."""
        assert compare_fields("p1", {"price": 12.0, "quantity": 5}, make_server(), SERVER_TIME) == []

    def test_untracked_fields_ignored(self) -> None:
        """tags is not a tracked field."""
        assert compare_fields("p1", {"tags": ["b"]}, make_server(), SERVER_TIME) == []


class TestCompareRecords:
    """Tests for compare_records."""

    def test_client_up_to_date(self) -> None:
        """A client as new as the server cannot conflict."""
        client = {"id": "p1", "price": 99.0, "updated_at": SERVER_TIME, "revision": 1}
        assert compare_records("p1", client, make_server()) == []

    def test_version_mismatch(self) -> None:
        """A stale revision yields a version descriptor plus field diffs."""
        client = {
            "id": "p1",
            "price": 10.0,
            "revision": 1,
            "updated_at": SERVER_TIME - timedelta(minutes=1),
        }
        conflicts = compare_records("p1", client, make_server())
        assert [c.field for c in conflicts] == ["version", "price"]
        assert conflicts[0].client_value == 1
        assert conflicts[0].server_value == 2

    def test_timestamp_only_client(self) -> None:
        """Without a revision the client gets an updated_at descriptor."""
        client_time = SERVER_TIME - timedelta(minutes=1)
        client = {"id": "p1", "updated_at": client_time}
        conflicts = compare_records("p1", client, make_server())
        assert len(conflicts) == 1
        assert conflicts[0].field == "updated_at"
        assert conflicts[0].client_value == client_time
        assert conflicts[0].server_value == SERVER_TIME

    def test_missing_client_timestamp(self) -> None:
        """No timestamp at all: only differing fields are reported."""
        conflicts = compare_records("p1", {"id": "p1", "name": "Gadget"}, make_server())
        assert [c.field for c in conflicts] == ["name"]


class TestExistenceConflict:
    """Tests for existence_conflict."""

    def test_shape(self) -> None:
        conflict = existence_conflict("gone")
        assert conflict.record_id == "gone"
        assert conflict.field == "existence"
        assert conflict.client_value == "exists"
        assert conflict.server_value is None
        assert conflict.last_modified is not None
