"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The connection-handling machinery, in the order a connection meets it:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SOCKET SERVER       accept() loop with a 1 second poll             │
    └──────────────────────────────┬──────────────────────────────────────┘
                                   ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  CONNECTION LIMITER  at the ceiling → 503 and close, right here     │
    └──────────────────────────────┬──────────────────────────────────────┘
                                   ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  WORKER POOL         fixed threads, FIFO queue                      │
    └──────────────────────────────┬──────────────────────────────────────┘
                                   ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  CONNECTION          timed, size-bounded read of one request        │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, FramingError
from .limiter import ConnectionLimiter, ConnectionSlot
from .thread_pool import WorkerPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "FramingError",
    "ConnectionLimiter",
    "ConnectionSlot",
    "WorkerPool",
]
