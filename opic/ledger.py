"""
ledger.py - OPIC Cash Ledger

The CashLedger class is the in-memory state of the On-line Page Importance
Computation. It is the only module that mutates cash, and every mutation keeps
the total of history plus current constant (up to floating point drift).

Key responsibilities:
    - Seeds the system with a fixed amount of cash (initialise)
    - Moves cash from a visited source to its outputs and the virtual reserve (distribute)
    - Retires identifiers while keeping their cash in the totals (finalise)
    - Estimates an identifier's importance at a point in time (estimate)
    - Corrects accumulated drift on request (ensure_balance)

Thread Safety:
    One RWLock guards all state. Mutators take the exclusive side, reads take
    the shared side. There is no per-key locking: every distribute touches the
    virtual reserve, so finer locks would buy nothing.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import math

import numpy as np

from .core import (
    # Types
    Entry, LedgerState, Identifier,
    # Constants
    VIRTUAL_KEY, ZERO_TIME,
    # Exceptions
    InvalidArgument,
    # Helpers
    as_utc,
)
from .hashing import hash_identifier
from .rwlock import RWLock


def _interval_seconds(interval: timedelta) -> float:
    if not isinstance(interval, timedelta):
        raise InvalidArgument(f"interval must be a timedelta, got {type(interval).__name__}")
    seconds = interval.total_seconds()
    if seconds <= 0:
        raise InvalidArgument(f"interval must be positive, got {interval}")
    return seconds


def _decayed_estimate(history: float, current: float, elapsed: float, interval: float) -> float:
    """
    Score an entry elapsed seconds after its last clearing.

    Within the interval the history baseline decays linearly to zero and the
    current cash is added on top. Past the interval only current cash counts,
    scaled down by how overdue the entry is. Both branches give `current`
    at elapsed == interval.
    """
    if elapsed < interval:
        return history * (interval - elapsed) / interval + current
    return current * (interval / elapsed)


class CashLedger:
    """
    OPIC cash ledger keyed by 64-bit identifier hashes.

    Absent keys read as zero cash and a cleared time of ZERO_TIME; entries
    are created lazily by the operations that write them. Key 0 is the
    virtual reserve.

    Example:
        ledger = CashLedger()
        ledger.initialise(1.0, ["https://a/", "https://b/"])
        moved = ledger.distribute("https://a/", ["https://b/"], datetime.now(timezone.utc))
        score = ledger.estimate("https://b/", timedelta(hours=24), datetime.now(timezone.utc))
    """

    def __init__(self):
        self._lock = RWLock()
        self._current: Dict[int, float] = {}
        self._history: Dict[int, float] = {}
        self._cleared: Dict[int, datetime] = {}
        self._dirty = False
        # Bumped on every mutation; lets a save tell whether its snapshot is still current.
        self._generation = 0

    # ========================================================================
    # INTERNAL HELPERS (caller holds the lock)
    # ========================================================================

    def _touch(self) -> None:
        self._dirty = True
        self._generation += 1

    def _entry(self, key: int) -> Entry:
        return Entry(
            history=self._history.get(key, 0.0),
            current=self._current.get(key, 0.0),
            cleared=self._cleared.get(key, ZERO_TIME),
        )

    def _estimate(self, key: int, interval: float, observed_time: datetime) -> float:
        cleared = self._cleared.get(key, ZERO_TIME)
        elapsed = (observed_time - cleared).total_seconds()
        return _decayed_estimate(
            self._history.get(key, 0.0),
            self._current.get(key, 0.0),
            elapsed,
            interval,
        )

    # ========================================================================
    # MUTATING OPERATIONS
    # ========================================================================

    def initialise(self, total_cash: float, identifiers: Iterable[Identifier]) -> None:
        """
        Split total_cash evenly over the current cash of identifiers.

        This is a reset, not a top-up: existing current cash for these
        identifiers is overwritten.

        Args:
            total_cash: Cash to inject into the system
            identifiers: Population to seed (must be non-empty)

        Raises:
            InvalidArgument: If identifiers is empty or total_cash is negative or not finite
        """
        keys = [hash_identifier(i) for i in identifiers]
        if not keys:
            raise InvalidArgument("initialise() requires at least one identifier")
        if not math.isfinite(total_cash):
            raise InvalidArgument(f"total_cash must be finite, got {total_cash}")
        if total_cash < 0:
            raise InvalidArgument(f"total_cash must not be negative, got {total_cash}")

        share = total_cash / len(keys)
        with self._lock.write():
            for key in keys:
                self._current[key] = share
            self._touch()

    def distribute(
        self,
        source: Identifier,
        outputs: Sequence[Identifier],
        observed_time: datetime,
    ) -> float:
        """
        Record a visit to source and pass its cash on to outputs.

        The source's current cash c is split into len(outputs) + 1 equal
        shares: one for the virtual reserve and one per output. A fraction
        of the reserve, reserve / (entries + 1), is then skimmed and becomes
        the source's new current cash. The source's history is set to c and
        its cleared time to observed_time.

        Outputs seen for the first time get a cleared time of observed_time.
        Duplicate outputs receive one share per occurrence. If source is among
        its own outputs it keeps those shares on top of the skim.

        Args:
            source: The identifier that was visited
            outputs: Identifiers referenced by source (may be empty)
            observed_time: When the visit happened

        Returns:
            c, the cash that was distributed
        """
        source_key = hash_identifier(source)
        output_keys = [hash_identifier(o) for o in outputs]
        observed_time = as_utc(observed_time)

        with self._lock.write():
            cash = self._current.get(source_key, 0.0)
            share = cash / (len(output_keys) + 1)

            self._current[VIRTUAL_KEY] = self._current.get(VIRTUAL_KEY, 0.0) + share

            self_shares = 0
            for key in output_keys:
                if key == source_key:
                    self_shares += 1
                    continue
                if key not in self._current:
                    self._current[key] = 0.0
                    self._cleared.setdefault(key, observed_time)
                self._current[key] += share

            skim = self._current[VIRTUAL_KEY] / (len(self._current) + 1)
            self._current[VIRTUAL_KEY] -= skim

            self._current[source_key] = skim + share * self_shares
            self._cleared[source_key] = observed_time
            self._history[source_key] = cash

            self._touch()

        return cash

    def finalise(self, identifiers: Iterable[Identifier]) -> None:
        """
        Move current cash into history for each identifier and zero current.

        Cleared times are left alone, so the retired cash still decays from
        the last real visit.
        """
        keys = [hash_identifier(i) for i in identifiers]
        with self._lock.write():
            for key in keys:
                self._history[key] = self._current.get(key, 0.0)
                self._current[key] = 0.0
            self._touch()

    def ensure_balance(self, target: float) -> float:
        """
        Top up the virtual reserve so that history + current reaches target.

        Floating point drift slowly erodes the total; call this periodically
        to put the lost cash back. Never called implicitly.

        Args:
            target: Total cash the system should hold

        Returns:
            The amount added to the reserve (0.0 when already balanced)

        Raises:
            InvalidArgument: If target is not finite
        """
        if not math.isfinite(target):
            raise InvalidArgument(f"target must be finite, got {target}")
        with self._lock.write():
            total = math.fsum(self._history.values()) + math.fsum(self._current.values())
            if total >= target:
                return 0.0
            deficit = target - total
            self._current[VIRTUAL_KEY] = self._current.get(VIRTUAL_KEY, 0.0) + deficit
            self._touch()
            return deficit

    # ========================================================================
    # READ OPERATIONS
    # ========================================================================

    @property
    def dirty(self) -> bool:
        """True if state changed since the last load or save."""
        return self._dirty

    def get(self, identifier: Identifier) -> Entry:
        """Return the entry for identifier (zero-valued if never seen)."""
        return self.get_key(hash_identifier(identifier))

    def get_key(self, key: int) -> Entry:
        """Return the entry for a precomputed key."""
        with self._lock.read():
            return self._entry(key)

    def get_many(self, identifiers: Iterable[Identifier]) -> List[Entry]:
        """Return entries for several identifiers from one consistent snapshot."""
        keys = [hash_identifier(i) for i in identifiers]
        with self._lock.read():
            return [self._entry(k) for k in keys]

    def estimate(self, identifier: Identifier, interval: timedelta, observed_time: datetime) -> float:
        """
        Estimate the importance of identifier at observed_time.

        With h, c the history and current cash and d the time since the
        identifier was last cleared:

            d <  interval:  h * (interval - d) / interval + c
            d >= interval:  c * (interval / d)

        Args:
            identifier: Identifier to score
            interval: Target revisit interval (must be positive)
            observed_time: Time to score at

        Raises:
            InvalidArgument: If interval is not a positive timedelta
        """
        return self.estimate_key(hash_identifier(identifier), interval, observed_time)

    def estimate_key(self, key: int, interval: timedelta, observed_time: datetime) -> float:
        """Estimate for a precomputed key. See estimate()."""
        seconds = _interval_seconds(interval)
        observed_time = as_utc(observed_time)
        with self._lock.read():
            return self._estimate(key, seconds, observed_time)

    def estimate_many(
        self,
        identifiers: Iterable[Identifier],
        interval: timedelta,
        observed_time: datetime,
    ) -> np.ndarray:
        """Estimate several identifiers at once. Returns a float64 array in input order."""
        return self.estimate_many_keys([hash_identifier(i) for i in identifiers], interval, observed_time)

    def estimate_many_keys(
        self,
        keys: Sequence[int],
        interval: timedelta,
        observed_time: datetime,
    ) -> np.ndarray:
        """Vectorised estimate() over precomputed keys, read from one snapshot."""
        seconds = _interval_seconds(interval)
        observed_time = as_utc(observed_time)

        with self._lock.read():
            history = np.fromiter((self._history.get(k, 0.0) for k in keys), dtype=np.float64, count=len(keys))
            current = np.fromiter((self._current.get(k, 0.0) for k in keys), dtype=np.float64, count=len(keys))
            elapsed = np.fromiter(
                ((observed_time - self._cleared.get(k, ZERO_TIME)).total_seconds() for k in keys),
                dtype=np.float64,
                count=len(keys),
            )

        with np.errstate(divide="ignore", invalid="ignore"):
            fresh = history * (seconds - elapsed) / seconds + current
            stale = current * (seconds / elapsed)
        return np.where(elapsed < seconds, fresh, stale)

    def sums(self) -> Tuple[float, float]:
        """
        Return (total history, total current).

        In exact arithmetic these would match the injected cash between them;
        drift shows up as a shortfall. See ensure_balance().
        """
        with self._lock.read():
            return math.fsum(self._history.values()), math.fsum(self._current.values())

    def virtual(self) -> Tuple[float, float]:
        """Return (history, current) of the virtual reserve."""
        with self._lock.read():
            return self._history.get(VIRTUAL_KEY, 0.0), self._current.get(VIRTUAL_KEY, 0.0)

    def verify_conservation(self, expected_total: float, tolerance: float = 1e-9) -> Dict[str, Any]:
        """
        Check that history + current still adds up to expected_total.

        Args:
            expected_total: Cash injected into the system
            tolerance: Maximum allowed absolute difference

        Returns:
            Dict with keys:
            - 'valid': bool - True if the difference is within tolerance
            - 'history': float - total history cash
            - 'current': float - total current cash
            - 'total': float - history + current
            - 'expected': float - expected_total
            - 'difference': float - total - expected_total

        Example:
            report = ledger.verify_conservation(1.0)
            if not report['valid']:
                ledger.ensure_balance(1.0)
        """
        history, current = self.sums()
        total = history + current
        difference = total - expected_total
        return {
            'valid': abs(difference) <= tolerance,
            'history': history,
            'current': current,
            'total': total,
            'expected': expected_total,
            'difference': difference,
        }

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._current)

    def __contains__(self, identifier: Identifier) -> bool:
        key = hash_identifier(identifier)
        with self._lock.read():
            return key in self._current or key in self._history or key in self._cleared

    # ========================================================================
    # STATE TRANSFER (used by the persistence layer)
    # ========================================================================

    def export_state(self) -> Tuple[LedgerState, int]:
        """
        Copy the full state under the shared lock.

        Returns:
            (state, generation). Pass generation to mark_clean() once the
            copy has been written out.
        """
        with self._lock.read():
            state = LedgerState(
                current=dict(self._current),
                history=dict(self._history),
                cleared=dict(self._cleared),
            )
            return state, self._generation

    def replace_state(self, state: LedgerState) -> None:
        """Swap in state wholesale and mark the ledger clean."""
        with self._lock.write():
            self._current = state.current
            self._history = state.history
            self._cleared = state.cleared
            self._dirty = False
            self._generation += 1

    def mark_clean(self, generation: Optional[int] = None) -> bool:
        """
        Clear the dirty flag.

        If generation is given, the flag is only cleared when nothing has
        changed since export_state() returned that generation.

        Returns:
            True if the flag was cleared
        """
        with self._lock.write():
            if generation is not None and generation != self._generation:
                return False
            self._dirty = False
            return True

    def __repr__(self) -> str:
        history, current = self.sums()
        return f"CashLedger({len(self)} entries, history={history:.6g}, current={current:.6g}, dirty={self._dirty})"
