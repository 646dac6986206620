"""
rwlock.py - Shared/exclusive lock

A writer-preferring readers/writer lock built on threading.Condition.
Any number of readers may hold the lock at once; a writer holds it alone.
Once a writer is waiting, new readers queue behind it so a steady stream of
reads cannot starve distribution.

The lock is not reentrant. A thread holding either side must not try to
acquire it again.

Example:
    lock = RWLock()
    with lock.read():
        ...  # shared
    with lock.write():
        ...  # exclusive
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator
import threading


class RWLock:
    """Readers/writer lock with writer preference."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read() called without a matching acquire_read()")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            if not self._writer:
                raise RuntimeError("release_write() called without a matching acquire_write()")
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold the shared side for the duration of the block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        """Hold the exclusive side for the duration of the block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    def __repr__(self) -> str:
        return f"RWLock(readers={self._readers}, writer={self._writer}, writers_waiting={self._writers_waiting})"
