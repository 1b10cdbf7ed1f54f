"""
=============================================================================
CONNECTION LIMITER
=============================================================================

Caps the number of connections in flight: accepted but not yet closed.

    accept()
       │
       ▼
    limiter.try_acquire() ──► None ──► 503 on the listener thread, close
       │
       ▼ ConnectionSlot
    pool.submit(task)   ...   task finishes ──► slot.release()

Rejecting here costs one small write. The connection never touches the
worker pool, the framing code or the router.

A slot is released exactly once, whichever way the connection ends:
normally, by an exception, by being discarded at pool shutdown, or by
the pool refusing the task.

=============================================================================
"""

import threading
from typing import Optional


class ConnectionSlot:
    """
    One unit of the in-flight budget.

    Usable as a context manager; release() is idempotent.
    """

    def __init__(self, limiter: "ConnectionLimiter"):
        self._limiter = limiter
        self._released = False
        self._lock = threading.Lock()

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
        self._limiter._release()

    @property
    def released(self) -> bool:
        return self._released

    def __enter__(self) -> "ConnectionSlot":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


class ConnectionLimiter:
    """Enforces a global ceiling on concurrently handled connections."""

    def __init__(self, max_connections: int):
        if max_connections < 1:
            raise ValueError(f"max_connections must be >= 1, got {max_connections}")
        self._max_connections = max_connections
        self._lock = threading.Lock()
        self._active = 0
        self._rejected = 0

    def try_acquire(self) -> Optional[ConnectionSlot]:
        """Take a slot, or return None if the ceiling has been reached."""
        with self._lock:
            if self._active >= self._max_connections:
                self._rejected += 1
                return None
            self._active += 1
        return ConnectionSlot(self)

    def _release(self) -> None:
        with self._lock:
            if self._active > 0:
                self._active -= 1

    @property
    def in_flight(self) -> int:
        return self._active

    @property
    def max_connections(self) -> int:
        return self._max_connections

    @property
    def rejected(self) -> int:
        return self._rejected
