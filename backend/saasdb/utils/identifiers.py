from __future__ import annotations

import os
import time
import uuid


def generate_uuid7() -> str:
    """
    Generate a UUIDv7 string (time-ordered).

    UUIDv7 layout per draft:
    - 48-bit Unix timestamp in milliseconds
    - 4-bit version (0b0111)
    - 74-bit randomness

    Used as the primary key default for every table so that rows sort by
    creation time (contract history, audits, email logs).
    """
    ts_ms = int(time.time() * 1000)
    ts_bytes = ts_ms.to_bytes(6, "big", signed=False)
    rand_bytes = os.urandom(10)
    raw = bytearray(ts_bytes + rand_bytes)
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def build_correlation_id(*parts: object, max_length: int = 64) -> str:
    """
    Join parts into a colon-separated correlation id, e.g.
    ``renewal_reminder:<software_id>:<user_id>:2025-06-01``.

    Ids longer than the column width are replaced by a stable hash prefix.
    """
    raw = ":".join(str(part) for part in parts)
    if len(raw) <= max_length:
        return raw
    digest = uuid.uuid5(uuid.NAMESPACE_URL, raw).hex
    prefix = str(parts[0]) if parts else "cid"
    return f"{prefix[: max_length - len(digest) - 1]}:{digest}"
