"""Conflict comparison between a client copy and the server copy of a product.

A server copy that is not newer than the client's belief cannot conflict:
comparison stops early in that case so fields the client never changed do not
produce false positives.

Descriptors produced here:
- version: client believed a different revision
- updated_at: server is newer and the client tracks time only
- one per tracked business field whose values differ
- existence: record is gone on the server
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from productsync.core.timestamps import as_utc, parse_timestamp, utc_now_ms
from productsync.core.types import (
    EXISTENCE_FIELD,
    TRACKED_FIELDS,
    UPDATED_AT_FIELD,
    VERSION_FIELD,
)


@dataclass(frozen=True)
class ConflictDescriptor:
    """One detected difference between a client record and the server."""

    record_id: str
    field: str
    client_value: Any
    server_value: Any
    last_modified: datetime | None  # Server's updated_at


def is_server_newer(server_modified: datetime, client_modified: datetime | None) -> bool:
    """Check whether the server copy was modified after the client's copy.

    An unknown client timestamp cannot prove the server is not newer.
    """
    if client_modified is None:
        return True
    return as_utc(server_modified) > as_utc(client_modified)


def existence_conflict(record_id: str) -> ConflictDescriptor:
    """Descriptor for a record the client references but the server lacks."""
    return ConflictDescriptor(
        record_id=record_id,
        field=EXISTENCE_FIELD,
        client_value="exists",
        server_value=None,
        last_modified=utc_now_ms(),
    )


def compare_fields(
    record_id: str,
    client: Mapping[str, Any],
    server: Mapping[str, Any],
    server_modified: datetime | None,
    fields: Iterable[str] = TRACKED_FIELDS,
) -> list[ConflictDescriptor]:
    """Compare business fields by structural equality.

    Only fields present in ``client`` are compared; a partial client record
    says nothing about the fields it omits.
    """
    return [
        ConflictDescriptor(
            record_id=record_id,
            field=name,
            client_value=client[name],
            server_value=server.get(name),
            last_modified=server_modified,
        )
        for name in fields
        if name in client and client[name] != server.get(name)
    ]


def compare_records(
    record_id: str,
    client: Mapping[str, Any],
    server: Mapping[str, Any],
    fields: Iterable[str] = TRACKED_FIELDS,
) -> list[ConflictDescriptor]:
    """Compare a (possibly partial) client record with the server record.

    Both mappings use attribute names; ``revision`` and ``updated_at`` carry
    the version information.

    Returns:
        Descriptors, empty when there is no conflict.
    """
    server_modified = parse_timestamp(server["updated_at"])
    client_modified = parse_timestamp(client.get("updated_at"))

    if server_modified is None or not is_server_newer(server_modified, client_modified):
        return []

    conflicts: list[ConflictDescriptor] = []
    client_revision = client.get("revision")
    if client_revision is not None:
        if client_revision != server["revision"]:
            conflicts.append(
                ConflictDescriptor(
                    record_id=record_id,
                    field=VERSION_FIELD,
                    client_value=client_revision,
                    server_value=server["revision"],
                    last_modified=server_modified,
                )
            )
    elif client_modified is not None:
        conflicts.append(
            ConflictDescriptor(
                record_id=record_id,
                field=UPDATED_AT_FIELD,
                client_value=client_modified,
                server_value=server_modified,
                last_modified=server_modified,
            )
        )

    conflicts.extend(compare_fields(record_id, client, server, server_modified, fields))
    return conflicts
