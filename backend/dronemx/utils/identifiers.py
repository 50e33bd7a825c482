from __future__ import annotations

import os
import time
import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_uuid7() -> str:
    """
    Generate a UUIDv7 string (time-ordered).

    Layout:
    - 48-bit Unix timestamp in milliseconds
    - 4-bit version (0b0111)
    - 74-bit randomness
    """
    ts_ms = int(time.time() * 1000)
    raw = bytearray(ts_ms.to_bytes(6, "big", signed=False) + os.urandom(10))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def generate_reference(prefix: str, at: Optional[datetime] = None) -> str:
    """
    Human-readable reference such as ``WO-20260312-4F9A2C``.

    The suffix is taken from the random tail of a UUIDv7, so two references
    issued on the same day do not collide in practice; the unique column
    they are stored in is the final guard.
    """
    moment = at or datetime.now(timezone.utc)
    suffix = generate_uuid7().replace("-", "")[-6:].upper()
    return f"{prefix.upper()}-{moment:%Y%m%d}-{suffix}"
