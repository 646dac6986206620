"""
persistent.py - File-backed cash ledger

PersistentLedger binds a CashLedger to a state file:

    load()  reads the file into a fresh LedgerState and swaps it in whole,
            so a failed load leaves the ledger exactly as it was.
    save()  writes a snapshot to a temp file next to the target, fsyncs it
            and renames it over the target with os.replace(). Readers of the
            target path see either the old file or the new one, never a
            partial write.

One PersistentLedger per file. Two processes saving to the same path are not
coordinated; the last rename wins.
"""

from __future__ import annotations
from pathlib import Path
from typing import Union
import logging
import os
import tempfile

from .codec import read_state, write_state
from .ledger import CashLedger


logger = logging.getLogger(__name__)


def _fsync_dir(path: Path) -> None:
    """Flush the directory entry for a completed rename. Not available on every platform."""
    if not hasattr(os, "O_DIRECTORY"):
        return
    fd = os.open(path, os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class PersistentLedger(CashLedger):
    """
    CashLedger with load/save against a single file.

    Example:
        ledger = PersistentLedger("opic.db")
        ledger.load(ignore_missing=True)
        ledger.distribute(url, links, datetime.now(timezone.utc))
        if ledger.dirty:
            ledger.save()
    """

    def __init__(self, path: Union[str, os.PathLike]):
        """
        Args:
            path: Location of the state file
        """
        super().__init__()
        self.path = Path(path)

    def load(self, ignore_missing: bool = False) -> bool:
        """
        Replace the in-memory state with the contents of the state file.

        Args:
            ignore_missing: Treat a missing file as an empty, valid state

        Returns:
            True if the file was loaded, False if it was missing and ignored

        Raises:
            FileNotFoundError: If the file is missing and ignore_missing is False
            OSError: On any other I/O failure
            DecodeError: If the file contents are not a valid ledger
        """
        try:
            f = open(self.path, "rb")
        except FileNotFoundError:
            if ignore_missing:
                logger.debug("state file %s not found; starting empty", self.path)
                return False
            raise

        with f:
            state = read_state(f)

        self.replace_state(state)
        logger.debug(
            "loaded %s: %d current, %d history, %d cleared",
            self.path, len(state.current), len(state.history), len(state.cleared),
        )
        return True

    def save(self) -> None:
        """
        Atomically write the current state to the state file.

        The snapshot is taken under the shared lock; disk I/O happens without
        holding it. The dirty flag is cleared only if no mutation landed
        while the file was being written.

        Raises:
            OSError: If the temp file cannot be written or renamed. The target
                     file is left untouched and the ledger stays dirty.
                     Also raised if the directory cannot be synced after the
                     rename; the new file is already in place by then, so the
                     ledger is marked clean before the error propagates.
        """
        state, generation = self.export_state()
        directory = self.path.parent

        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=directory)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                written = write_state(state, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        self.mark_clean(generation)
        _fsync_dir(directory)
        logger.debug("saved %s: %d entries, %d bytes", self.path, len(state.current), written)

    def save_if_dirty(self) -> bool:
        """Save only when there are unsaved changes. Returns True if a save happened."""
        if not self.dirty:
            return False
        self.save()
        return True

    def __repr__(self) -> str:
        return f"PersistentLedger({str(self.path)!r}, {len(self)} entries, dirty={self.dirty})"
