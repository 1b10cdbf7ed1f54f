"""
=============================================================================
PARKINGSERVER - Parking Lot Management over a From-Scratch HTTP/1.1 Server
=============================================================================

A fixed-capacity parking lot (small and large vehicles, hourly rates,
fees on exit) served as a JSON API on raw sockets, a bounded worker
pool and a read/write-locked registry that survives restarts through an
atomic binary snapshot.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    parkingserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m parkingserver)
    ├── server.py            # ParkingServer, wires everything together
    ├── config.py            # ServerConfig dataclass
    ├── core/                # Networking and concurrency
    │   ├── socket_server.py # Listening socket and accept loop
    │   ├── limiter.py       # In-flight connection ceiling
    │   ├── connection.py    # Bounded request framing
    │   └── thread_pool.py   # Fixed worker pool
    ├── lot/                 # The parking domain
    │   ├── models.py        # VehicleCategory, OccupantRecord, fees
    │   ├── registry.py      # ParkingRegistry
    │   ├── rwlock.py        # Writer-preferring read/write lock
    │   └── snapshot.py      # Binary snapshot codec and store
    ├── http/                # HTTP protocol
    │   ├── request.py
    │   ├── response.py
    │   ├── router.py
    │   ├── status_codes.py
    │   └── mime_types.py
    ├── middleware/          # Logging and CORS
    └── handlers/            # Parking API, health, static frontend

=============================================================================
QUICK START
=============================================================================

    from parkingserver import ParkingServer, ServerConfig

    server = ParkingServer(ServerConfig(port=8080, capacity=100))
    server.run()

    $ curl -X POST localhost:8080/api/vehicle \\
           -d '{"plate": "京A12345", "type": "small"}'

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import ParkingServer
from .lot import (
    ParkingRegistry,
    RegistryResult,
    Failure,
    VehicleCategory,
    OccupantRecord,
    SnapshotStore,
)

__all__ = [
    "__version__",
    "ServerConfig",
    "ParkingServer",
    "ParkingRegistry",
    "RegistryResult",
    "Failure",
    "VehicleCategory",
    "OccupantRecord",
    "SnapshotStore",
]
