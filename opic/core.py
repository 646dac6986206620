"""
Core types and constants for the OPIC cash ledger.

This module provides the foundational pieces shared by the ledger, the codec
and the persistence layer:
1. Constants: the reserved virtual key, the file format markers, CLI defaults
2. Exceptions: OpicError and the specific error types
3. Value types: Entry (a point lookup result) and LedgerState (the three maps)
4. Time helpers: conversion between datetimes and Unix seconds

Nothing in this module holds a lock or touches shared state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Union


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved key for the virtual reserve. Cash that is not attributed to any
# identifier lives here; the hash of a real identifier is assumed never to be 0.
VIRTUAL_KEY = 0

# Binary file format markers.
MAGIC = b"#opicdb#"
FORMAT_VERSION = 1

# Keys are unsigned 64-bit hashes.
KEY_MASK = 0xFFFFFFFFFFFFFFFF

UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Cleared time reported for identifiers that have never been seen.
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

# Defaults for the command-line front end.
DEFAULT_FILENAME = "opic.db"
DEFAULT_INTERVAL = timedelta(hours=24)
DEFAULT_INITIAL_CASH = 1.0


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Identifiers are arbitrary byte strings; str is accepted and UTF-8 encoded.
Identifier = Union[bytes, str]

# Mapping from 64-bit key to a cash amount.
CashMap = Dict[int, float]

# Mapping from 64-bit key to the time of the most recent clearing.
ClearedMap = Dict[int, datetime]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class OpicError(Exception):
    """Base exception for all OPIC ledger errors."""
    pass


class InvalidArgument(OpicError, ValueError):
    """Raised when an operation is called with inputs it cannot act on (e.g. an empty population)."""
    pass


class DecodeError(OpicError):
    """Raised when a serialised ledger cannot be decoded."""
    pass


class BadMagic(DecodeError):
    """Raised when the stream does not start with the expected magic marker."""
    pass


class UnsupportedVersion(DecodeError):
    """Raised when the stream declares a format version this code does not read."""
    pass


class TruncatedData(DecodeError):
    """Raised when the stream ends in the middle of a header or section."""
    pass


# ============================================================================
# VALUE TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Entry:
    """
    Snapshot of a single ledger entry.

    Attributes:
        history: Cash captured at the entry's most recent clearing.
        current: Cash accumulated since that clearing.
        cleared: Time of the most recent clearing (ZERO_TIME if never seen).
    """
    history: float
    current: float
    cleared: datetime

    @property
    def total(self) -> float:
        """Undecayed score: history plus current."""
        return self.history + self.current

    def __repr__(self) -> str:
        return f"Entry(history={self.history!r}, current={self.current!r}, cleared={self.cleared.isoformat()})"


@dataclass(slots=True)
class LedgerState:
    """
    The three mappings that make up a ledger, detached from any lock.

    Used to move state between a CashLedger and the codec. Decoding always
    produces a fresh LedgerState, so a failed decode never leaves a ledger
    half-populated.
    """
    current: CashMap = field(default_factory=dict)
    history: CashMap = field(default_factory=dict)
    cleared: ClearedMap = field(default_factory=dict)

    def copy(self) -> LedgerState:
        return LedgerState(
            current=dict(self.current),
            history=dict(self.history),
            cleared=dict(self.cleared),
        )

    def __len__(self) -> int:
        return len(self.current)


# ============================================================================
# TIME HELPERS
# ============================================================================

def as_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime. Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_unix_seconds(value: datetime) -> int:
    """
    Convert a datetime to whole Unix seconds, rounding towards negative infinity.

    Works for datetimes before the epoch (including ZERO_TIME), which
    datetime.timestamp() does not handle on every platform.
    """
    delta = as_utc(value) - UNIX_EPOCH
    return delta.days * 86400 + delta.seconds


def from_unix_seconds(seconds: int) -> datetime:
    """Inverse of to_unix_seconds."""
    return UNIX_EPOCH + timedelta(seconds=seconds)
