"""
=============================================================================
HANDLERS PACKAGE
=============================================================================

Request handlers mounted on the router:

    ParkingHandlers     /api/...       the parking lot API
    HealthHandler       /health...     liveness / readiness probes
    StaticFileHandler   /*path         the browser frontend

Usage:
    router = Router()
    ParkingHandlers(registry).register(router)
    HealthHandler().add_check("lot", registry_check(registry)).register(router)
    router.get("/*path")(StaticFileHandler("frontend").handle)

=============================================================================
"""

from .parking import ParkingHandlers, FAILURE_STATUS, failure_response
from .static import StaticFileHandler
from .health import HealthHandler, HealthStatus, registry_check, pool_check

__all__ = [
    "ParkingHandlers",
    "FAILURE_STATUS",
    "failure_response",
    "StaticFileHandler",
    "HealthHandler",
    "HealthStatus",
    "registry_check",
    "pool_check",
]
