"""
Durability Conformance Tests

INVARIANT: the state file is always either the old snapshot or the new one.

    save() fails before rename  ⟹  target bytes unchanged, ledger still dirty
    load() fails                ⟹  ledger unchanged
    load() of a missing file    ⟹  error unless ignore_missing

A save interrupted at any point before os.replace() must leave the canonical
file readable and identical to its previous contents.
"""

import pytest

from opic import PersistentLedger, DecodeError
import opic.persistent


class Crash(BaseException):
    """Stands in for the process dying mid-save."""


class TestDurability:

    @pytest.mark.parametrize("point", ["write", "fsync", "replace"])
    def test_crash_before_rename_preserves_file(self, state_path, t0, monkeypatch, point):
        ledger = PersistentLedger(state_path)
        ledger.initialise(1.0, ["a", "b"])
        ledger.save()
        original = state_path.read_bytes()

        ledger.distribute("a", ["b", "c"], t0)

        def crash(*args, **kwargs):
            raise Crash(point)

        if point == "write":
            monkeypatch.setattr(opic.persistent, "write_state", crash)
        else:
            monkeypatch.setattr(opic.persistent.os, point, crash)

        with pytest.raises(Crash):
            ledger.save()
        monkeypatch.undo()

        assert state_path.read_bytes() == original
        assert ledger.dirty

        survivor = PersistentLedger(state_path)
        survivor.load()
        assert survivor.get("a").current == 0.5
        assert survivor.get("c").current == 0.0

    def test_missing_file_without_opt_in(self, state_path):
        with pytest.raises(FileNotFoundError):
            PersistentLedger(state_path).load(ignore_missing=False)

    def test_missing_file_with_opt_in(self, state_path):
        ledger = PersistentLedger(state_path)
        assert ledger.load(ignore_missing=True) is False
        assert ledger.sums() == (0.0, 0.0)
        assert len(ledger) == 0

    @pytest.mark.parametrize("cut", [0, 7, 15, 23, 39, 50])
    def test_partial_file_never_half_loads(self, state_path, t0, cut):
        writer = PersistentLedger(state_path)
        writer.initialise(2.0, ["a", "b"])
        writer.distribute("a", ["b"], t0)
        writer.save()
        data = state_path.read_bytes()
        state_path.write_bytes(data[:cut])

        reader = PersistentLedger(state_path)
        reader.initialise(9.0, ["z"])
        with pytest.raises(DecodeError):
            reader.load()
        assert reader.get("z").current == 9.0
        assert reader.get("a").current == 0.0

    def test_save_load_save_is_stable(self, state_path, t0):
        ledger = PersistentLedger(state_path)
        ledger.initialise(5.0, ["a", "b", "c", "d"])
        ledger.distribute("c", ["a", "d"], t0)
        ledger.save()
        first = state_path.read_bytes()

        reloaded = PersistentLedger(state_path)
        reloaded.load()
        reloaded.initialise(5.0, ["e"])
        reloaded.load()
        assert not reloaded.dirty
        reloaded.save()
        assert state_path.read_bytes() == first
