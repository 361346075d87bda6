"""
ID generation using UUIDv7-style (time-ordered) identifiers

Version ids, item ids and event ids all sort by creation time, which keeps
the event log and item listings naturally ordered.

Fun fact: a millisecond timestamp in the leading 48 bits will not overflow
until the year 10889 - budget cycles will be someone else's problem by then.
"""

import secrets
import time
import uuid


def generate_id() -> str:
    """
    Generate a UUIDv7-like identifier

    Layout (128 bits): 48-bit Unix timestamp in milliseconds, 4-bit version
    (0b0111), 12 random bits, 2-bit variant (0b10), 62 random bits.

    Returns:
        Sortable UUID string (e.g., "01908e9a-3b87-7000-8000-123456789abc")
    """
    timestamp_ms = int(time.time() * 1000) & 0xFFFFFFFFFFFF

    value = timestamp_ms << 80
    value |= 0x7 << 76
    value |= secrets.randbits(12) << 64
    value |= 0b10 << 62
    value |= secrets.randbits(62)

    return str(uuid.UUID(int=value))
