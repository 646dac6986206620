"""
codec.py - Binary serialisation of ledger state

Layout (big-endian throughout):

    magic           8 bytes     b"#opicdb#"
    version         u64         must be 1
    current-count   u64
    current         count x (u64 key, f64 cash)
    history-count   u64
    history         count x (u64 key, f64 cash)
    cleared-count   u64
    cleared         count x (u64 key, i64 Unix seconds)

There is no checksum and no overall length; a stream that ends early is
reported as TruncatedData. Entries are written sorted by key, so equal states
encode to equal bytes, but readers accept any order.

Functions:
- write_state / encode_state: LedgerState -> stream / bytes
- read_state / decode_state: stream / bytes -> new LedgerState
"""

from __future__ import annotations
from typing import BinaryIO, List, Tuple
import io
import struct

import numpy as np

from .core import (
    LedgerState, CashMap, ClearedMap,
    MAGIC, FORMAT_VERSION,
    DecodeError, BadMagic, UnsupportedVersion, TruncatedData,
    from_unix_seconds, to_unix_seconds,
)


_U64 = struct.Struct(">Q")
_READ_CHUNK = 1 << 20

CASH_ENTRY = np.dtype([("key", ">u8"), ("value", ">f8")])
TIME_ENTRY = np.dtype([("key", ">u8"), ("value", ">i8")])


# ============================================================================
# ENCODING
# ============================================================================

def _cash_section(values: CashMap) -> np.ndarray:
    keys = sorted(values)
    section = np.empty(len(keys), dtype=CASH_ENTRY)
    section["key"] = np.array(keys, dtype=np.uint64)
    section["value"] = np.array([values[k] for k in keys], dtype=np.float64)
    return section


def _time_section(values: ClearedMap) -> np.ndarray:
    keys = sorted(values)
    section = np.empty(len(keys), dtype=TIME_ENTRY)
    section["key"] = np.array(keys, dtype=np.uint64)
    section["value"] = np.array([to_unix_seconds(values[k]) for k in keys], dtype=np.int64)
    return section


def write_state(state: LedgerState, stream: BinaryIO) -> int:
    """
    Serialise state to a binary stream.

    Args:
        state: Ledger state to write
        stream: Writable binary file-like object

    Returns:
        Number of bytes written
    """
    written = 0

    def emit(data: bytes) -> None:
        nonlocal written
        stream.write(data)
        written += len(data)

    emit(MAGIC)
    emit(_U64.pack(FORMAT_VERSION))
    for section in (
        _cash_section(state.current),
        _cash_section(state.history),
        _time_section(state.cleared),
    ):
        emit(_U64.pack(len(section)))
        emit(section.tobytes())

    return written


def encode_state(state: LedgerState) -> bytes:
    """Serialise state to bytes."""
    buf = io.BytesIO()
    write_state(state, buf)
    return buf.getvalue()


# ============================================================================
# DECODING
# ============================================================================

def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    # Read in bounded chunks so a corrupt count fails as truncation, not as a huge allocation.
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(min(remaining, _READ_CHUNK))
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    if remaining:
        raise TruncatedData(
            f"unexpected end of data reading {what}: wanted {size} bytes, got {size - remaining}"
        )
    return b"".join(chunks)


def _read_u64(stream: BinaryIO, what: str) -> int:
    return _U64.unpack(_read_exact(stream, _U64.size, what))[0]


def _read_section(stream: BinaryIO, dtype: np.dtype, what: str) -> np.ndarray:
    count = _read_u64(stream, f"{what} count")
    body = _read_exact(stream, count * dtype.itemsize, f"{what} entries")
    return np.frombuffer(body, dtype=dtype, count=count)


def _section_pairs(section: np.ndarray) -> Tuple[List[int], list]:
    return section["key"].tolist(), section["value"].tolist()


def read_state(stream: BinaryIO) -> LedgerState:
    """
    Deserialise a ledger state from a binary stream.

    The header is validated before any entries are read. The result is
    always a new LedgerState; nothing is written anywhere on failure.

    Raises:
        BadMagic: If the stream does not start with the magic marker
        UnsupportedVersion: If the version is not FORMAT_VERSION
        TruncatedData: If the stream ends early
    """
    magic = _read_exact(stream, len(MAGIC), "magic")
    if magic != MAGIC:
        raise BadMagic(f"invalid magic: expected {MAGIC!r}, got {magic!r}")

    version = _read_u64(stream, "version")
    if version != FORMAT_VERSION:
        raise UnsupportedVersion(f"invalid version: expected {FORMAT_VERSION}, got {version}")

    current_keys, current_values = _section_pairs(_read_section(stream, CASH_ENTRY, "current"))
    history_keys, history_values = _section_pairs(_read_section(stream, CASH_ENTRY, "history"))
    cleared_keys, cleared_values = _section_pairs(_read_section(stream, TIME_ENTRY, "cleared"))

    cleared: ClearedMap = {}
    for key, seconds in zip(cleared_keys, cleared_values):
        try:
            cleared[key] = from_unix_seconds(seconds)
        except OverflowError as e:
            raise DecodeError(f"cleared time {seconds} for key {key:#x} is out of range") from e

    return LedgerState(
        current=dict(zip(current_keys, current_values)),
        history=dict(zip(history_keys, history_values)),
        cleared=cleared,
    )


def decode_state(data: bytes) -> LedgerState:
    """Deserialise a ledger state from bytes. Trailing bytes are ignored."""
    return read_state(io.BytesIO(data))
