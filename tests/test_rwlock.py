"""
test_rwlock.py - Unit tests for rwlock.py

Tests:
- Readers share the lock
- Writers exclude readers and other writers
- Waiting writers block new readers
- Unbalanced releases are errors
"""

import threading
import time
import pytest

from opic import RWLock


TIMEOUT = 5.0


class TestRWLock:

    def test_readers_share(self):
        lock = RWLock()
        barrier = threading.Barrier(3, timeout=TIMEOUT)
        errors = []

        def reader():
            try:
                with lock.read():
                    barrier.wait()
            except threading.BrokenBarrierError as e:
                errors.append(e)

        threads = [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(TIMEOUT)
        assert errors == []

    def test_writer_waits_for_reader(self):
        lock = RWLock()
        acquired = threading.Event()

        def writer():
            with lock.write():
                acquired.set()

        lock.acquire_read()
        t = threading.Thread(target=writer)
        t.start()
        assert not acquired.wait(0.2)
        lock.release_read()
        assert acquired.wait(TIMEOUT)
        t.join(TIMEOUT)

    def test_writer_excludes_writer(self):
        lock = RWLock()
        acquired = threading.Event()

        def writer():
            with lock.write():
                acquired.set()

        lock.acquire_write()
        t = threading.Thread(target=writer)
        t.start()
        assert not acquired.wait(0.2)
        lock.release_write()
        assert acquired.wait(TIMEOUT)
        t.join(TIMEOUT)

    def test_waiting_writer_blocks_new_readers(self):
        lock = RWLock()
        order = []
        writer_started = threading.Event()

        def writer():
            writer_started.set()
            with lock.write():
                order.append("writer")

        def reader():
            with lock.read():
                order.append("reader")

        lock.acquire_read()
        w = threading.Thread(target=writer)
        w.start()
        writer_started.wait(TIMEOUT)
        # give the writer time to register as waiting
        deadline = time.monotonic() + TIMEOUT
        while "writers_waiting=1" not in repr(lock) and time.monotonic() < deadline:
            time.sleep(0.01)
        r = threading.Thread(target=reader)
        r.start()
        lock.release_read()
        w.join(TIMEOUT)
        r.join(TIMEOUT)
        assert order == ["writer", "reader"]

    def test_lock_released_on_exception(self):
        lock = RWLock()
        with pytest.raises(RuntimeError, match="boom"):
            with lock.write():
                raise RuntimeError("boom")
        with lock.read():
            pass

    def test_unbalanced_release(self):
        lock = RWLock()
        with pytest.raises(RuntimeError):
            lock.release_read()
        with pytest.raises(RuntimeError):
            lock.release_write()
