"""Checksum functions for change detection.

This module provides:
- rolling_hash: 32-bit "h * 31 + c" string hash rendered in base 36
- revision_checksum: fingerprint over (id, revision, updated_at) triples

These are cheap change detectors, not integrity primitives.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from productsync.core.timestamps import to_epoch_ms

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"

# Separator between the "id:revision:millis" entries
ENTRY_SEPARATOR = "|"


def _to_int32(value: int) -> int:
    """Wrap an integer to a signed 32-bit value."""
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def _to_base36(value: int) -> str:
    """Render an integer in base 36, with a leading '-' for negatives."""
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return sign + "".join(reversed(digits))


def _utf16_code_units(data: str) -> Iterable[int]:
    """Yield the UTF-16 code units of a string."""
    encoded = data.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        yield encoded[i] | (encoded[i + 1] << 8)


def rolling_hash(data: str) -> str:
    """Hash a string with the classic 31-multiplier rolling hash.

    Each UTF-16 code unit is folded in as ``hash = hash * 31 + unit`` with
    the accumulator truncated to a signed 32-bit integer after every step.

    Args:
        data: String to hash.

    Returns:
        Base-36 rendering of the signed 32-bit hash ("0" for "").
    """
    value = 0
    for unit in _utf16_code_units(data):
        value = _to_int32(value * 31 + unit)
    return _to_base36(value)


def revision_entry(record_id: str, revision: int, updated_at: datetime) -> str:
    """Format one checksum entry as ``id:revision:epochMillis``."""
    return f"{record_id}:{revision}:{to_epoch_ms(updated_at)}"


def revision_checksum(stamps: Iterable[tuple[str, int, datetime]]) -> str:
    """Compute the collection checksum over already-ordered triples.

    Args:
        stamps: (id, revision, updated_at) triples in canonical order.

    Returns:
        Checksum string.
    """
    data = ENTRY_SEPARATOR.join(
        revision_entry(record_id, revision, updated_at)
        for record_id, revision, updated_at in stamps
    )
    return rolling_hash(data)
