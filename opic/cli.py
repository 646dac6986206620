"""
cli.py - Command-line front end for a file-backed OPIC ledger

Usage:
    opic --import urls.tsv --initialise 1000
    opic --read https://a/ https://b/
    opic --estimate --interval 12h https://a/ https://b/
    opic --distribute https://a/ https://b/ https://c/
    opic --stats

The state file is loaded at startup (a missing file is an empty ledger) and
written back only if the command changed something.
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, TextIO
import argparse
import logging
import re
import sys

from .core import (
    DEFAULT_FILENAME, DEFAULT_INTERVAL, DEFAULT_INITIAL_CASH,
    OpicError, as_utc,
)
from .persistent import PersistentLedger


logger = logging.getLogger(__name__)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}

_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})"
)


# ============================================================================
# ARGUMENT PARSING
# ============================================================================

def parse_duration(text: str) -> timedelta:
    """
    Parse a duration such as "24h", "90m", "1h30m", "2.5s" or a plain number of seconds.

    Raises:
        argparse.ArgumentTypeError: If text is not a positive duration
    """
    text = text.strip()
    try:
        seconds = float(text)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(text):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos == 0 or pos != len(text):
            raise argparse.ArgumentTypeError(f"invalid duration: {text!r}")
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"duration must be positive: {text!r}")
    return timedelta(seconds=seconds)


def parse_time(text: str) -> datetime:
    """
    Parse an RFC 3339 timestamp ("2024-05-01T12:00:00Z") into an aware UTC datetime.

    The date, time and offset are all required. Fractional seconds are
    truncated to microseconds.
    """
    match = _RFC3339.fullmatch(text.strip())
    if match is None:
        raise argparse.ArgumentTypeError(f"invalid RFC 3339 time: {text!r}")

    year, month, day, hour, minute, second = (int(match.group(i)) for i in range(1, 7))
    micros = int((match.group("frac") or "").ljust(6, "0")[:6])
    offset = match.group("offset")

    try:
        if offset in ("Z", "z"):
            tz = timezone.utc
        else:
            sign = -1 if offset[0] == "-" else 1
            tz = timezone(sign * timedelta(hours=int(offset[1:3]), minutes=int(offset[4:6])))
        value = datetime(year, month, day, hour, minute, second, micros, tzinfo=tz)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid RFC 3339 time: {text!r}") from e
    return as_utc(value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opic",
        description="Maintain OPIC importance scores in a local state file.",
    )
    parser.add_argument("--filename", default=DEFAULT_FILENAME, help="File to keep state in.")
    parser.add_argument(
        "--interval", type=parse_duration, default=DEFAULT_INTERVAL,
        help="Interval for the OPIC estimate (e.g. 24h, 90m, 3600).",
    )
    parser.add_argument(
        "--initialise", type=float, default=DEFAULT_INITIAL_CASH,
        help="Global cash used when importing.",
    )
    parser.add_argument("--time", type=parse_time, default=None, help="RFC 3339 time for estimate and distribute.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--import", dest="import_file", metavar="FILE", help="Tab-delimited file of identifiers to initialise with.")
    mode.add_argument("--read", action="store_true", help="Print raw history, current and cleared values for the arguments.")
    mode.add_argument("--estimate", action="store_true", help="Print estimated importance of the arguments.")
    mode.add_argument("--distribute", metavar="SOURCE", help="Distribute cash from SOURCE to the arguments.")
    mode.add_argument("--stats", action="store_true", help="Print totals for the whole ledger.")
    mode.add_argument(
        "--ensure-balance", dest="ensure_balance", type=float, metavar="CASH",
        help="Top up the virtual reserve so the total reaches CASH.",
    )

    parser.add_argument("identifiers", nargs="*", help="Identifiers to operate on.")
    return parser


# ============================================================================
# COMMANDS
# ============================================================================

def read_import_file(path: str) -> List[str]:
    """Return the first tab-delimited column of every non-empty line in path."""
    identifiers = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.rstrip(" \r\n")
            if not line:
                continue
            identifiers.append(line.split("\t", 1)[0])
    return identifiers


def _print_stats(ledger: PersistentLedger, out: TextIO) -> None:
    history, current = ledger.sums()
    virtual_history, virtual_current = ledger.virtual()
    print(f"entries\t{len(ledger)}", file=out)
    print(f"history\t{history!r}", file=out)
    print(f"current\t{current!r}", file=out)
    print(f"total\t{history + current!r}", file=out)
    print(f"virtual\t{virtual_history!r}\t{virtual_current!r}", file=out)


def run(args: argparse.Namespace, out: Optional[TextIO] = None) -> None:
    """Execute one parsed command against the state file."""
    out = out or sys.stdout
    observed_time = args.time or datetime.now(timezone.utc)

    ledger = PersistentLedger(args.filename)
    ledger.load(ignore_missing=True)

    if args.read:
        for identifier, entry in zip(args.identifiers, ledger.get_many(args.identifiers)):
            print(f"{identifier}\t{entry.history!r}\t{entry.current!r}\t{entry.cleared.isoformat()}", file=out)
    elif args.estimate:
        scores = ledger.estimate_many(args.identifiers, args.interval, observed_time)
        for identifier, score in zip(args.identifiers, scores.tolist()):
            print(f"{identifier}\t{score!r}", file=out)
    elif args.distribute:
        moved = ledger.distribute(args.distribute, args.identifiers, observed_time)
        logger.debug("distributed %r from %s to %d outputs", moved, args.distribute, len(args.identifiers))
    elif args.import_file:
        print(f"# importing from {args.import_file}", file=out)
        identifiers = read_import_file(args.import_file)
        print(f"# initialising to {args.initialise!r} with {len(identifiers)} urls", file=out)
        ledger.initialise(args.initialise, identifiers)
    elif args.ensure_balance is not None:
        added = ledger.ensure_balance(args.ensure_balance)
        print(f"# added {added!r} to the virtual reserve", file=out)
    elif args.stats:
        _print_stats(ledger, out)

    if ledger.dirty:
        print("# saving", file=out)
        ledger.save()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        run(args)
    except (OpicError, OSError) as e:
        print(f"opic: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
