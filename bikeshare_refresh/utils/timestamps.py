from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

# "+02:00Z", "-0500Z": a numeric offset followed by a redundant UTC marker.
_REDUNDANT_Z = re.compile(r"[+-]\d{2}:?\d{2}Z$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (e.g. read back from SQLite), convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an upstream ISO-8601 timestamp into an aware UTC datetime.

    Upstream feeds sometimes append "Z" after an explicit numeric offset
    ("2024-05-01T10:00:00+02:00Z"); that trailing "Z" is dropped before
    parsing. Returns None for missing or unparseable input, never raises.
    """
    if not isinstance(value, str):
        return None

    cleaned = value.strip()
    if not cleaned:
        return None

    if _REDUNDANT_Z.search(cleaned):
        cleaned = cleaned[:-1]

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except (ValueError, OverflowError):
        # Offsets can push values at the calendar limits out of range.
        return None
