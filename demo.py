#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the OPIC Ledger Step by Step

A short walkthrough of the cash ledger. Each step builds on the previous one.
Press Enter to advance.

WHAT YOU'LL LEARN:
  1-2: Foundation   - Seeding cash, visiting a page
  3-4: Scoring      - Estimates over time, the virtual reserve
  5-6: Bookkeeping  - Conservation, saving and loading

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List
import sys
import tempfile

from opic import CashLedger, PersistentLedger, VIRTUAL_KEY


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0, tzinfo=timezone.utc)
    interval: timedelta = timedelta(hours=24)
    total_cash: float = 3.0
    pages: List[str] = field(default_factory=lambda: [
        "https://example.com/a",
        "https://example.com/b",
        "https://example.com/c",
    ])


CONFIG = DemoConfig()
QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]\n")


def step_header(number: int, title: str, objective: str):
    print()
    print("=" * 70)
    print(f"STEP {number}: {title}")
    print("=" * 70)
    print(f"Objective: {objective}")
    print()


def section_header(text: str):
    print(f"\n--- {text} ---")


def show_entries(ledger: CashLedger):
    for page in CONFIG.pages:
        entry = ledger.get(page)
        print(f"  {page:<26} history={entry.history:.4f}  current={entry.current:.4f}")
    print(f"  {'(virtual reserve)':<26} current={ledger.get_key(VIRTUAL_KEY).current:.4f}")


# ============================================================================
# STEPS
# ============================================================================

def step_01_initialise() -> CashLedger:
    step_header(1, "Seed the ledger", "Spread cash evenly over a population")
    ledger = CashLedger()
    print(f">>> ledger.initialise({CONFIG.total_cash}, pages)")
    ledger.initialise(CONFIG.total_cash, CONFIG.pages)
    show_entries(ledger)
    print("\nKey Insight: every page starts with the same current cash and no history.")
    return ledger


def step_02_distribute(ledger: CashLedger):
    step_header(2, "Visit a page", "Pass the source's cash on to its outputs")
    a, b = CONFIG.pages[0], CONFIG.pages[1]
    when = CONFIG.start_time + timedelta(hours=1)
    print(f">>> ledger.distribute({a!r}, [{b!r}], t0 + 1h)")
    moved = ledger.distribute(a, [b], when)
    print(f"  distributed {moved:.4f}")
    show_entries(ledger)
    print("\nKey Insight: half went to the output, half to the reserve;")
    print("the source skims a slice of the reserve back as its new current cash.")


def step_03_estimate(ledger: CashLedger):
    step_header(3, "Estimate importance", "Watch a score decay as time passes")
    a = CONFIG.pages[0]
    for hours in (1, 7, 13, 25, 49, 97):
        when = CONFIG.start_time + timedelta(hours=hours)
        score = ledger.estimate(a, CONFIG.interval, when)
        print(f"  t0 + {hours:>3}h  estimate={score:.4f}")
    print("\nKey Insight: history fades out over one interval, after which")
    print("current cash is spread over the time since the last visit.")


def step_04_batch(ledger: CashLedger):
    step_header(4, "Score many pages", "Estimate a whole batch at one observation time")
    when = CONFIG.start_time + timedelta(hours=12)
    scores = ledger.estimate_many(CONFIG.pages, CONFIG.interval, when)
    for page, score in sorted(zip(CONFIG.pages, scores), key=lambda p: -p[1]):
        print(f"  {score:.4f}  {page}")


def step_05_conservation(ledger: CashLedger):
    step_header(5, "Check conservation", "History plus current equals the injected cash")
    history, current = ledger.sums()
    print(f"  sums(): history={history:.4f} current={current:.4f}")
    target = CONFIG.total_cash + history
    report = ledger.verify_conservation(target)
    print(f"  verify_conservation({target:.4f}) -> valid={report['valid']} difference={report['difference']:.3e}")
    added = ledger.ensure_balance(target)
    print(f"  ensure_balance({target:.4f}) added {added:.3e} to the reserve")


def step_06_persist(ledger: CashLedger):
    step_header(6, "Save and load", "Write the ledger atomically and read it back")
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "opic.db"
        stored = PersistentLedger(path)
        state, _ = ledger.export_state()
        stored.replace_state(state)
        print(f">>> stored.save()  # {path.name}")
        stored.save()
        print(f"  wrote {path.stat().st_size} bytes, dirty={stored.dirty}")

        restored = PersistentLedger(path)
        restored.load()
        print(f"  reloaded {len(restored)} entries, sums match: {restored.sums() == ledger.sums()}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       OPIC CASH LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    ledger = step_01_initialise()
    wait_for_enter()
    step_02_distribute(ledger)
    wait_for_enter()
    step_03_estimate(ledger)
    wait_for_enter()
    step_04_batch(ledger)
    wait_for_enter()
    step_05_conservation(ledger)
    wait_for_enter()
    step_06_persist(ledger)

    print()
    print("=" * 70)
    print("TUTORIAL COMPLETE")
    print("=" * 70)


if __name__ == "__main__":
    main()
