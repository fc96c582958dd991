"""Client-side conflict resolution.

This module provides:
- ConflictResolver: reconcile client and server copies by strategy
- Resolution: the reconciled records plus what went wrong on the way

Strategies:
- server-wins: keep the server copies, write nothing
- client-wins: push conflicted client copies back to the server
- merge: per product, the copy with the newer updated_at wins
- prompt-user: delegate to a handler (server-wins when there is none)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

from productsync.client.api import ProductRecord
from productsync.core.conflicts import ConflictDescriptor, is_server_newer
from productsync.core.types import ResolutionStrategy

logger = logging.getLogger(__name__)

PromptHandler = Callable[
    [Sequence[ConflictDescriptor], Sequence[ProductRecord], Sequence[ProductRecord]],
    list[ProductRecord],
]


class RecordWriter(Protocol):
    """Anything that can overwrite a product on the server."""

    def update_product(self, product_id: str, fields: Mapping[str, Any]) -> ProductRecord: ...


@dataclass
class Resolution:
    """Outcome of a resolution run."""

    records: list[ProductRecord]
    failed_ids: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class ConflictResolver:
    """Reconciles conflicting client and server copies of products."""

    def __init__(
        self,
        writer: RecordWriter | None = None,
        strategy: ResolutionStrategy | str = ResolutionStrategy.SERVER_WINS,
        prompt_handler: PromptHandler | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            writer: Used by client-wins to push client copies to the server.
            strategy: Default strategy.
            prompt_handler: Called by prompt-user with
                (conflicts, client_records, server_records).
        """
        self._writer = writer
        self._strategy = ResolutionStrategy(strategy)
        self._prompt_handler = prompt_handler

    @property
    def strategy(self) -> ResolutionStrategy:
        """Default strategy."""
        return self._strategy

    def resolve(
        self,
        conflicts: Sequence[ConflictDescriptor],
        client_records: Sequence[ProductRecord],
        server_records: Sequence[ProductRecord],
        strategy: ResolutionStrategy | str | None = None,
    ) -> Resolution:
        """Reconcile the two sides.

        Args:
            conflicts: Detected conflicts; their record ids mark the
                products client-wins pushes.
            client_records: Client copies.
            server_records: Server copies.
            strategy: Overrides the default strategy for this call.

        Returns:
            Resolution with the reconciled records.

        Raises:
            ValueError: If client-wins is requested without a writer.
        """
        chosen = ResolutionStrategy(strategy) if strategy is not None else self._strategy
        logger.debug(
            "Resolving %d conflicts with strategy %s", len(conflicts), chosen.value
        )

        if chosen is ResolutionStrategy.CLIENT_WINS:
            return self._client_wins(conflicts, client_records, server_records)
        if chosen is ResolutionStrategy.MERGE:
            return Resolution(records=_merge(client_records, server_records))
        if chosen is ResolutionStrategy.PROMPT_USER:
            return self._prompt_user(conflicts, client_records, server_records)
        return Resolution(records=list(server_records))

    def resolve_conflicts(
        self,
        conflicts: Sequence[ConflictDescriptor],
        client_records: Sequence[ProductRecord],
        server_records: Sequence[ProductRecord],
        strategy: ResolutionStrategy | str | None = None,
    ) -> list[ProductRecord]:
        """Reconcile the two sides and return only the records."""
        return self.resolve(conflicts, client_records, server_records, strategy).records

    def _client_wins(
        self,
        conflicts: Sequence[ConflictDescriptor],
        client_records: Sequence[ProductRecord],
        server_records: Sequence[ProductRecord],
    ) -> Resolution:
        if self._writer is None:
            raise ValueError("client-wins resolution requires a writer")

        conflicted_ids = {c.record_id for c in conflicts}
        server_by_id = {r.id: r for r in server_records}
        resolution = Resolution(records=[])

        for record in client_records:
            if record.id not in conflicted_ids:
                resolution.records.append(record)
                continue

            try:
                written = self._writer.update_product(record.id, record.business_fields())
            except Exception as e:
                logger.error("Failed to push product %s to server: %s", record.id, e)
                resolution.failed_ids.append(record.id)
                resolution.warnings.append(f"Product {record.id}: {e}")
                fallback = server_by_id.get(record.id)
                if fallback is not None:
                    resolution.records.append(fallback)
                continue

            resolution.records.append(
                replace(record, revision=written.revision, updated_at=written.updated_at)
            )

        if resolution.failed_ids:
            logger.warning(
                "Client-wins fell back to server copies for %d products",
                len(resolution.failed_ids),
            )
        return resolution

    def _prompt_user(
        self,
        conflicts: Sequence[ConflictDescriptor],
        client_records: Sequence[ProductRecord],
        server_records: Sequence[ProductRecord],
    ) -> Resolution:
        if self._prompt_handler is None:
            message = "No prompt handler configured, defaulting to server wins"
            logger.warning(message)
            return Resolution(records=list(server_records), warnings=[message])
        return Resolution(
            records=list(self._prompt_handler(conflicts, client_records, server_records))
        )


def _merge(
    client_records: Sequence[ProductRecord],
    server_records: Sequence[ProductRecord],
) -> list[ProductRecord]:
    """Whole-record merge: the newer copy wins, ties go to the client.

    The server copy only wins on a proven newer timestamp, so a record with
    an unknown updated_at on either side keeps the client copy.
    """
    client_by_id = {r.id: r for r in client_records}
    server_by_id = {r.id: r for r in server_records}

    # Client order first, then server-only products
    ordered_ids = list(client_by_id)
    ordered_ids.extend(i for i in server_by_id if i not in client_by_id)

    merged: list[ProductRecord] = []
    for record_id in ordered_ids:
        client = client_by_id.get(record_id)
        server = server_by_id.get(record_id)
        if client is None:
            assert server is not None
            merged.append(server)
        elif server is None:
            merged.append(client)
        elif (
            server.updated_at is not None
            and client.updated_at is not None
            and is_server_newer(server.updated_at, client.updated_at)
        ):
            merged.append(server)
        else:
            merged.append(client)
    return merged
