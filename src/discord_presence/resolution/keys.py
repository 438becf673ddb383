"""Stable cache-key hashing."""

from __future__ import annotations

_FNV64_OFFSET = 14695981039346656037
_FNV64_PRIME = 1099511628211
_MASK64 = (1 << 64) - 1


def hash_key(value: str) -> str:
    """FNV-1a 64-bit hash of ``value`` as 16 lowercase hex digits."""
    h = _FNV64_OFFSET
    for byte in value.encode("utf-8"):
        h ^= byte
        h = (h * _FNV64_PRIME) & _MASK64
    return f"{h:016x}"
