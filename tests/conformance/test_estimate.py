"""
Estimate Boundary Conformance Tests

INVARIANT: the two branches of estimate() meet at d == interval.

    lim d↑interval  h * (interval - d) / interval + c  =  c
    lim d↓interval  c * (interval / d)                 =  c

so the score is continuous in time for any history h and current c.
The score also never increases with elapsed time once the entry is
past its clearing time.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from datetime import datetime, timedelta, timezone

from opic import CashLedger, LedgerState


CLEARED = datetime(2025, 1, 1, tzinfo=timezone.utc)
KEY = 12345

cash_amount = st.floats(min_value=0.0, max_value=1e6, allow_nan=False, allow_infinity=False)
interval_seconds = st.integers(min_value=60, max_value=30 * 86400)


def _ledger_with(history: float, current: float) -> CashLedger:
    ledger = CashLedger()
    ledger.replace_state(LedgerState(
        current={KEY: current},
        history={KEY: history},
        cleared={KEY: CLEARED},
    ))
    return ledger


class TestEstimateBoundary:

    @given(cash_amount, cash_amount, interval_seconds)
    @settings(max_examples=200)
    def test_branches_meet_at_interval(self, history, current, seconds):
        ledger = _ledger_with(history, current)
        interval = timedelta(seconds=seconds)
        eps = timedelta(microseconds=1)

        at = ledger.estimate_key(KEY, interval, CLEARED + interval)
        below = ledger.estimate_key(KEY, interval, CLEARED + interval - eps)
        above = ledger.estimate_key(KEY, interval, CLEARED + interval + eps)

        assert at == current
        # each side is off by roughly 1µs / interval of h (below) or of c (above)
        assert below == pytest.approx(current, rel=1e-9, abs=2 * history * 1e-6 / seconds + 1e-12)
        assert above == pytest.approx(current, rel=2e-6 / seconds, abs=1e-12)

    @given(cash_amount, cash_amount, interval_seconds, st.lists(st.integers(min_value=0, max_value=90 * 86400), min_size=2, max_size=10))
    @settings(max_examples=100)
    def test_score_never_grows_with_time(self, history, current, seconds, offsets):
        ledger = _ledger_with(history, current)
        interval = timedelta(seconds=seconds)
        scores = [
            ledger.estimate_key(KEY, interval, CLEARED + timedelta(seconds=s))
            for s in sorted(offsets)
        ]
        for earlier, later in zip(scores, scores[1:]):
            assert later <= earlier * (1 + 1e-12) + 1e-12

    @given(cash_amount, cash_amount, interval_seconds)
    @settings(max_examples=100)
    def test_batch_matches_scalar_at_boundary(self, history, current, seconds):
        ledger = _ledger_with(history, current)
        interval = timedelta(seconds=seconds)
        when = CLEARED + interval
        assert ledger.estimate_many_keys([KEY], interval, when)[0] == ledger.estimate_key(KEY, interval, when)


class TestEstimateExamples:

    def test_half_interval(self):
        ledger = _ledger_with(history=2.0, current=0.5)
        assert ledger.estimate_key(KEY, timedelta(hours=10), CLEARED + timedelta(hours=5)) == pytest.approx(1.5)

    def test_triple_interval(self):
        ledger = _ledger_with(history=2.0, current=0.6)
        assert ledger.estimate_key(KEY, timedelta(hours=1), CLEARED + timedelta(hours=3)) == pytest.approx(0.2)

    def test_observed_before_cleared(self):
        """Observation times before the clearing extrapolate the decay line backwards."""
        ledger = _ledger_with(history=1.0, current=0.0)
        score = ledger.estimate_key(KEY, timedelta(hours=1), CLEARED - timedelta(minutes=30))
        assert score == pytest.approx(1.5)
