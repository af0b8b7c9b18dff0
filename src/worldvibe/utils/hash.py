# src/worldvibe/utils/hash.py
"""Hashing and randomness helpers used by the admission core."""

from __future__ import annotations

import hashlib
import secrets

SHA256_HEX_LEN = 64


def sha256_hexdigest(message: str | bytes) -> str:
    """Return the SHA-256 hex digest of a string (UTF-8) or bytes payload."""
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hashlib.sha256(message).hexdigest()


def random_hex(num_bytes: int) -> str:
    """Return ``num_bytes`` of CSPRNG output, hex-encoded (two chars per byte)."""
    return secrets.token_hex(num_bytes)
