"""
opic - On-line Page Importance Computation cash ledger

Keeps a conserved amount of "cash" spread over a population of identifiers
(usually URLs). Visiting an identifier passes its cash on to the identifiers
it links to; the cash an identifier collects approximates how often it should
be revisited.

Usage:
    from datetime import datetime, timedelta, timezone
    from opic import PersistentLedger

    ledger = PersistentLedger("opic.db")
    ledger.load(ignore_missing=True)

    ledger.initialise(1.0, ["https://a/", "https://b/", "https://c/"])
    ledger.distribute("https://a/", ["https://b/"], datetime.now(timezone.utc))

    score = ledger.estimate("https://b/", timedelta(hours=24), datetime.now(timezone.utc))

    if ledger.dirty:
        ledger.save()
"""

# Core types
from .core import (
    Entry,
    LedgerState,
    Identifier,
    OpicError,
    InvalidArgument,
    DecodeError,
    BadMagic,
    UnsupportedVersion,
    TruncatedData,
    VIRTUAL_KEY,
    MAGIC,
    FORMAT_VERSION,
    ZERO_TIME,
    DEFAULT_FILENAME,
    DEFAULT_INTERVAL,
    DEFAULT_INITIAL_CASH,
)

# Hashing
from .hashing import fnv1_64, hash_identifier, hash_identifiers

# Ledger
from .ledger import CashLedger
from .rwlock import RWLock

# Codec
from .codec import (
    write_state,
    read_state,
    encode_state,
    decode_state,
)

# Persistence
from .persistent import PersistentLedger

__all__ = [
    # Core
    'Entry', 'LedgerState', 'Identifier',
    'OpicError', 'InvalidArgument', 'DecodeError', 'BadMagic',
    'UnsupportedVersion', 'TruncatedData',
    'VIRTUAL_KEY', 'MAGIC', 'FORMAT_VERSION', 'ZERO_TIME',
    'DEFAULT_FILENAME', 'DEFAULT_INTERVAL', 'DEFAULT_INITIAL_CASH',
    # Hashing
    'fnv1_64', 'hash_identifier', 'hash_identifiers',
    # Ledger
    'CashLedger', 'RWLock',
    # Codec
    'write_state', 'read_state', 'encode_state', 'decode_state',
    # Persistence
    'PersistentLedger',
]

__version__ = '1.0.0'
