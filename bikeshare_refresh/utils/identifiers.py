from __future__ import annotations

import hashlib
import uuid


def derive_station_id(key: str) -> str:
    """
    Derive a stable UUID-formatted id from an upstream station id.

    The first 128 bits of the SHA-1 digest of `key` are formatted as
    8-4-4-4-12 hex groups. The same key always yields the same id, which
    keeps station upserts idempotent across refreshes.

    Raises:
        ValueError: if `key` is empty.
    """
    if not key:
        raise ValueError("cannot derive an id from an empty key")
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
    return str(uuid.UUID(hex=digest[:32]))
