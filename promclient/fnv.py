"""Inline FNV-1a (64 bit) hashing over strings and single bytes."""

from __future__ import annotations

OFFSET64 = 14695981039346656037
PRIME64 = 1099511628211
_MASK64 = (1 << 64) - 1


def hash_new() -> int:
    """Return the initial FNV-1a 64 bit hash value."""
    return OFFSET64


def _as_bytes(s: str | bytes) -> bytes:
    if isinstance(s, bytes):
        return s
    return s.encode("utf-8", "surrogateescape")


def hash_add(h: int, s: str | bytes) -> int:
    """Add the bytes of ``s`` to the hash value ``h`` and return the result."""
    for byte in _as_bytes(s):
        h = ((h ^ byte) * PRIME64) & _MASK64
    return h


def hash_add_byte(h: int, b: int) -> int:
    """Add a single byte to the hash value ``h`` and return the result."""
    if not 0 <= b <= 0xFF:
        raise ValueError(f"{b} is not a byte value")
    return ((h ^ b) * PRIME64) & _MASK64