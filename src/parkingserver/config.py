"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every setting the parking server reads, in one dataclass.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   Priority (highest to lowest):                                     │
    │                                                                     │
    │   1. Command-line arguments                                         │
    │      └── python -m parkingserver --port 3000 --capacity 50          │
    │                                                                     │
    │   2. Environment variables                                          │
    │      └── PARKING_PORT=3000 python -m parkingserver                  │
    │                                                                     │
    │   3. Default values (in this dataclass)                             │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Capacity and rates are startup defaults only. If a snapshot file exists
and loads cleanly, the values stored in it win.

=============================================================================
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _default_workers() -> int:
    return os.cpu_count() or 4


@dataclass
class ServerConfig:
    """
    Configuration for the parking server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK      host, port, backlog, buffer_size
    FRAMING      read_timeout, request_timeout, max_header_size, max_body_size
    CONCURRENCY  workers, max_connections
    PARKING      capacity, small_rate, large_rate, data_file, max_admit_wait
    FRONTEND     static_dir, cors
    LOGGING      log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    port: int = 8080
    backlog: int = 128
    buffer_size: int = 8192

    # ─────────────────────────────────────────────────────────────────────
    # FRAMING LIMITS
    # ─────────────────────────────────────────────────────────────────────

    read_timeout: float = 5.0
    """Seconds any single recv() may block."""

    request_timeout: float = 30.0
    """Seconds the whole request (headers and body) may take to arrive."""

    max_header_size: int = 8192
    max_body_size: int = 1024 * 1024

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY
    # ─────────────────────────────────────────────────────────────────────

    workers: int = field(default_factory=_default_workers)
    """Worker threads. Defaults to the CPU count."""

    max_connections: int = 64
    """
    Ceiling on connections being handled or queued. Past it, new
    connections get 503 straight from the listener thread.
    """

    # ─────────────────────────────────────────────────────────────────────
    # PARKING LOT
    # ─────────────────────────────────────────────────────────────────────

    capacity: int = 100
    small_rate: float = 5.0
    large_rate: float = 8.0

    data_file: Optional[str] = "parking_data.dat"
    """Snapshot file. None keeps state in memory only."""

    max_admit_wait: float = 30.0
    """Upper bound on the "wait" an API client may ask for when the lot is full."""

    # ─────────────────────────────────────────────────────────────────────
    # FRONTEND
    # ─────────────────────────────────────────────────────────────────────

    static_dir: Optional[str] = None
    cors: bool = True

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    server_name: str = "ParkingServer/1.0"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Build a configuration from PARKING_* environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        PARKING_HOST              Bind address (default: 0.0.0.0)
        PARKING_PORT              Listen port (default: 8080)
        PARKING_WORKERS           Worker threads (default: CPU count)
        PARKING_MAX_CONNECTIONS   In-flight ceiling (default: 64)
        PARKING_READ_TIMEOUT      Per-read timeout, seconds (default: 5)
        PARKING_CAPACITY          Spaces in the lot (default: 100)
        PARKING_SMALL_RATE        Hourly rate, small vehicles (default: 5.0)
        PARKING_LARGE_RATE        Hourly rate, large vehicles (default: 8.0)
        PARKING_DATA_FILE         Snapshot path (default: parking_data.dat)
        PARKING_STATIC_DIR        Frontend directory (default: none)
        PARKING_LOG_LEVEL         Logging level (default: INFO)

        =====================================================================
        """
        return cls(
            host=os.getenv("PARKING_HOST", "0.0.0.0"),
            port=int(os.getenv("PARKING_PORT", "8080")),
            workers=int(os.getenv("PARKING_WORKERS", str(_default_workers()))),
            max_connections=int(os.getenv("PARKING_MAX_CONNECTIONS", "64")),
            read_timeout=float(os.getenv("PARKING_READ_TIMEOUT", "5")),
            capacity=int(os.getenv("PARKING_CAPACITY", "100")),
            small_rate=float(os.getenv("PARKING_SMALL_RATE", "5.0")),
            large_rate=float(os.getenv("PARKING_LARGE_RATE", "8.0")),
            data_file=os.getenv("PARKING_DATA_FILE", "parking_data.dat"),
            static_dir=os.getenv("PARKING_STATIC_DIR"),
            log_level=os.getenv("PARKING_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Check values at startup.

        Raises:
            ValueError: On the first invalid setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.workers < 1:
            raise ValueError("workers must be >= 1")

        if self.max_connections < 1:
            raise ValueError("max_connections must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.read_timeout <= 0 or self.request_timeout <= 0:
            raise ValueError("read_timeout and request_timeout must be > 0")

        if self.max_header_size < 64:
            raise ValueError("max_header_size must be >= 64")

        if self.max_body_size < 0:
            raise ValueError("max_body_size must be >= 0")

        if not 1 <= self.capacity <= 1000:
            raise ValueError(f"capacity must be 1-1000, got {self.capacity}")

        if self.small_rate <= 0 or self.large_rate <= 0:
            raise ValueError("small_rate and large_rate must be > 0")

        if self.max_admit_wait < 0:
            raise ValueError("max_admit_wait must be >= 0")
