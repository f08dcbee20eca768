"""Content addressing for stored payloads.

A payload's key is the SHA-256 digest of its UTF-8 bytes, rendered as 64
lowercase hex characters. Identical payloads always map to the same key,
which is what lets compress skip the write when the key already exists.
"""

import hashlib
import re

KEY_LENGTH = 64

_KEY_PATTERN = re.compile(r"[0-9a-f]{64}")


def address_of(payload: str) -> str:
    """Return the content key for ``payload``.

    Raises:
        TypeError: If payload is not a str
    """
    if not isinstance(payload, str):
        raise TypeError(f"payload must be str, got {type(payload).__name__}")
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def is_content_key(value: object) -> bool:
    """True if ``value`` is shaped like a key produced by address_of."""
    return isinstance(value, str) and _KEY_PATTERN.fullmatch(value) is not None
