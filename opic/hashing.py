"""
hashing.py - Identifier to key mapping

Identifiers (usually URLs) are reduced to 64-bit FNV-1 hashes. Two
identifiers that collide share a single ledger entry; at 64 bits this is rare
enough to accept in exchange for fixed-size keys.

The hash is FNV-1 (multiply, then xor), not FNV-1a. Files written by other
implementations of the same format depend on this exact variant.
"""

from __future__ import annotations
from typing import Iterable, List

from .core import Identifier, KEY_MASK


FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3


def _as_bytes(identifier: Identifier) -> bytes:
    if isinstance(identifier, str):
        return identifier.encode("utf-8")
    if isinstance(identifier, (bytes, bytearray, memoryview)):
        return bytes(identifier)
    raise TypeError(f"Identifier must be bytes or str, got {type(identifier).__name__}")


def fnv1_64(data: bytes) -> int:
    """Return the 64-bit FNV-1 hash of data."""
    h = FNV64_OFFSET_BASIS
    for byte in data:
        h = (h * FNV64_PRIME) & KEY_MASK
        h ^= byte
    return h


def hash_identifier(identifier: Identifier) -> int:
    """
    Map an identifier to its ledger key.

    Args:
        identifier: bytes, or str (encoded as UTF-8)

    Returns:
        Unsigned 64-bit key

    Raises:
        TypeError: If identifier is neither bytes nor str
    """
    return fnv1_64(_as_bytes(identifier))


def hash_identifiers(identifiers: Iterable[Identifier]) -> List[int]:
    """Map each identifier to its key, preserving order and duplicates."""
    return [hash_identifier(i) for i in identifiers]
