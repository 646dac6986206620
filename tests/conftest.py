"""
conftest.py - Shared pytest fixtures for OPIC tests

Provides common fixtures used across unit and conformance tests:
- Empty and seeded ledgers
- Fixed observation times
- Temporary state file paths
- Comparison utilities
"""

import pytest
from datetime import datetime, timedelta, timezone

from opic import CashLedger, PersistentLedger, LedgerState


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def ledger_state(ledger: CashLedger) -> LedgerState:
    """Return a detached copy of a ledger's state."""
    state, _ = ledger.export_state()
    return state


def states_equal(a: LedgerState, b: LedgerState) -> bool:
    """Exact comparison of two states (same keys, same values)."""
    return a.current == b.current and a.history == b.history and a.cleared == b.cleared


# =============================================================================
# TIME FIXTURES
# =============================================================================

@pytest.fixture
def t0():
    """A whole-second UTC time so values survive the codec unchanged."""
    return datetime(2025, 1, 15, 9, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def t1(t0):
    return t0 + timedelta(hours=1)


@pytest.fixture
def day():
    return timedelta(hours=24)


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    """An empty ledger."""
    return CashLedger()


@pytest.fixture
def seeded_ledger():
    """3.0 cash spread over a, b and c."""
    ledger = CashLedger()
    ledger.initialise(3.0, ["a", "b", "c"])
    return ledger


@pytest.fixture
def state_path(tmp_path):
    """Path for a state file inside a per-test temp directory."""
    return tmp_path / "opic.db"


@pytest.fixture
def persistent(state_path):
    """A PersistentLedger bound to a not-yet-existing file."""
    return PersistentLedger(state_path)
