"""
=============================================================================
READER-WRITER LOCK
=============================================================================

Many threads may read the registry at once; a mutation needs it alone.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         LOCK STATES                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   FREE ──read()──► SHARED (readers = n)                             │
    │     │                  │                                            │
    │     │                  └── a writer waits until readers == 0        │
    │     │                                                               │
    │     └──write()──► EXCLUSIVE (one writer, no readers)                │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Writer preference: while a writer is waiting, new readers block. Without
it a steady stream of GET /api/status requests could starve admissions.

=============================================================================
CONDITIONS ON THE WRITE SIDE
=============================================================================

new_condition() returns a WriteCondition bound to this lock. A writer
that cannot proceed (the lot is full) calls wait_for(predicate, timeout).
That gives up exclusive ownership and sleeps in one atomic step, then
reacquires ownership before re-checking the predicate. A notify() issued
by another writer while it holds the lock can therefore never be lost.

The lock is not reentrant.

=============================================================================
"""

import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional


class ReadWriteLock:
    """Writer-preferring reader-writer lock."""

    def __init__(self):
        self._mutex = threading.Lock()
        self._state_changed = threading.Condition(self._mutex)
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    # ─────────────────────────────────────────────────────────────────────
    # Shared side
    # ─────────────────────────────────────────────────────────────────────

    def acquire_read(self) -> None:
        with self._mutex:
            while self._writer or self._waiting_writers:
                self._state_changed.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._mutex:
            if self._readers <= 0:
                raise RuntimeError("release_read() called without a read lock")
            self._readers -= 1
            if self._readers == 0:
                self._state_changed.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    # ─────────────────────────────────────────────────────────────────────
    # Exclusive side
    # ─────────────────────────────────────────────────────────────────────

    def acquire_write(self) -> None:
        with self._mutex:
            self._acquire_write_locked()

    def _acquire_write_locked(self) -> None:
        # Caller holds self._mutex.
        self._waiting_writers += 1
        try:
            while self._writer or self._readers:
                self._state_changed.wait()
        finally:
            self._waiting_writers -= 1
        self._writer = True

    def release_write(self) -> None:
        with self._mutex:
            self._release_write_locked()

    def _release_write_locked(self) -> None:
        if not self._writer:
            raise RuntimeError("release_write() called without the write lock")
        self._writer = False
        self._state_changed.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    def new_condition(self) -> "WriteCondition":
        """Create a condition that writers holding this lock can wait on."""
        return WriteCondition(self)

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def write_locked(self) -> bool:
        return self._writer


class WriteCondition:
    """
    Condition variable tied to the exclusive side of a ReadWriteLock.

    Both wait_for() and notify() must be called while holding the write
    lock.
    """

    def __init__(self, lock: ReadWriteLock):
        self._lock = lock
        self._cond = threading.Condition(lock._mutex)

    def wait_for(self, predicate: Callable[[], bool], timeout: Optional[float]) -> bool:
        """
        Wait until predicate() is true or the timeout elapses.

        The predicate is only ever evaluated while the caller owns the
        write lock, and the caller owns it again when this returns.

        Args:
            predicate: Condition to wait for.
            timeout: Seconds to wait; None waits forever.

        Returns:
            The last value of predicate(), so False means timed out.
        """
        lock = self._lock
        deadline = None if timeout is None else time.monotonic() + timeout

        with lock._mutex:
            result = predicate()
            while not result:
                if deadline is None:
                    remaining = None
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break

                lock._release_write_locked()
                try:
                    self._cond.wait(remaining)
                finally:
                    lock._acquire_write_locked()

                result = predicate()
            return result

    def notify(self, n: int = 1) -> None:
        """Wake up to n waiting writers."""
        with self._lock._mutex:
            self._cond.notify(n)

    def notify_all(self) -> None:
        with self._lock._mutex:
            self._cond.notify_all()
