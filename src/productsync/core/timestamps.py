"""Timestamp helpers shared by client and server.

Record timestamps are kept at millisecond precision so that values
round-tripped through epoch milliseconds compare equal to the stored ones.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime (naive values are assumed to be UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def truncate_ms(value: datetime) -> datetime:
    """Drop sub-millisecond precision."""
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def utc_now_ms() -> datetime:
    """Current UTC time truncated to milliseconds."""
    return truncate_ms(datetime.now(UTC))


def to_epoch_ms(value: datetime) -> int:
    """Convert a datetime to integer epoch milliseconds."""
    delta = as_utc(value) - EPOCH
    return (delta.days * 86400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_epoch_ms(value: int | float) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=value)


def parse_timestamp(value: datetime | str | int | float | None) -> datetime | None:
    """Parse an ISO 8601 string, epoch milliseconds or datetime into UTC.

    Returns:
        Aware UTC datetime, or None when value is None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, int | float):
        return from_epoch_ms(value)
    return as_utc(datetime.fromisoformat(value))
