"""
Identifier and capability-token generation

Record ids are UUIDv7-style (time-ordered, so rows sort by creation).
Offer tokens are opaque URL-safe secrets handed to providers for
self-service offer entry.
"""

import secrets
import time


def generate_id() -> str:
    """
    Generate a UUIDv7-like identifier (time-ordered UUID)

    First 48 bits carry the Unix timestamp in milliseconds, the version
    nibble is 7 and the variant bits are 10; the rest is random.

    Returns:
        Sortable UUID string (e.g., "01908e9a-3b87-7000-8000-123456789abc")
    """
    timestamp_ms = int(time.time() * 1000) & 0xFFFFFFFFFFFF
    rand_a = secrets.randbits(12)
    rand_b = secrets.randbits(62)

    value = (
        (timestamp_ms << 80)
        | (0x7 << 76)
        | (rand_a << 64)
        | (0b10 << 62)
        | rand_b
    )
    hex_str = f"{value:032x}"
    return (
        f"{hex_str[0:8]}-{hex_str[8:12]}-{hex_str[12:16]}-"
        f"{hex_str[16:20]}-{hex_str[20:32]}"
    )


def generate_offer_token(nbytes: int = 24) -> str:
    """
    Generate an unguessable offer token

    Args:
        nbytes: Bytes of randomness (24 bytes = 32 URL-safe characters)
    """
    return secrets.token_urlsafe(nbytes)
