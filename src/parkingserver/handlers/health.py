"""
=============================================================================
HEALTH CHECK HANDLER
=============================================================================

    /health         every registered check, 200 if all pass else 503
    /health/live    200 while the process can answer at all
    /health/ready   503 when any check fails (lot unreadable, pool closed)

Checks are plain callables returning HealthStatus. The server registers
two: "lot" (the registry answers a status query) and "workers" (the pool
is still accepting work).

    ┌─────────────────────────────────────────────────────────────────┐
    │ {                                                               │
    │   "status": "healthy",                                          │
    │   "uptime_seconds": 3600,                                       │
    │   "checks": {                                                   │
    │     "lot":     {"status": "healthy", "message": "OK",           │
    │                 "capacity": 100, "occupied": 12},               │
    │     "workers": {"status": "healthy", "message": "OK", ...}      │
    │   }                                                             │
    │ }                                                               │
    └─────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import time
import logging
import platform
import sys
from typing import Callable, Dict, Any
from dataclasses import dataclass, field

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, HTTPStatus
from ..core.thread_pool import WorkerPool
from ..lot.registry import ParkingRegistry


logger = logging.getLogger(__name__)


@dataclass
class HealthStatus:
    """Result of one health check."""

    healthy: bool
    message: str = "OK"
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "status": "healthy" if self.healthy else "unhealthy",
            "message": self.message,
            **self.details,
        }


HealthCheck = Callable[[], HealthStatus]


def registry_check(registry: ParkingRegistry) -> HealthCheck:
    """Healthy while the registry answers a status query."""
    def check() -> HealthStatus:
        status = registry.status()
        return HealthStatus(
            healthy=True,
            details={"capacity": status.capacity, "occupied": status.occupied},
        )
    return check


def pool_check(pool: WorkerPool) -> HealthCheck:
    """Unhealthy once the pool has been shut down."""
    def check() -> HealthStatus:
        stats = pool.stats
        if pool.closed:
            return HealthStatus(healthy=False, message="Worker pool is closed", details=stats)
        return HealthStatus(healthy=True, details=stats)
    return check


class HealthHandler:
    """
    Health check endpoint handler.

        health = HealthHandler()
        health.add_check("lot", registry_check(registry))
        health.register(router)
    """

    def __init__(self, include_details: bool = True, include_system_info: bool = False):
        """
        Args:
            include_details: Include each check's result in /health.
            include_system_info: Include hostname and Python version.
        """
        self.include_details = include_details
        self.include_system_info = include_system_info
        self._checks: Dict[str, HealthCheck] = {}
        self._start_time = time.time()

    def add_check(self, name: str, check: HealthCheck) -> "HealthHandler":
        self._checks[name] = check
        return self

    def register(self, router) -> None:
        router.get("/health", name="health")(self.handle)
        router.get("/health/live", name="liveness")(self.liveness)
        router.get("/health/ready", name="readiness")(self.readiness)

    def _run_checks(self) -> tuple[bool, Dict[str, Any]]:
        results: Dict[str, Any] = {}
        all_healthy = True

        for name, check in self._checks.items():
            try:
                status = check()
                results[name] = status.to_dict()
                if not status.healthy:
                    all_healthy = False
            except Exception as e:
                logger.warning(f"Health check {name!r} raised: {e}")
                results[name] = {"status": "unhealthy", "error": str(e)}
                all_healthy = False

        return all_healthy, results

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Run every check. 200 if all pass, 503 if any fails."""
        all_healthy, results = self._run_checks()

        response_data: Dict[str, Any] = {
            "status": "healthy" if all_healthy else "unhealthy",
            "uptime_seconds": int(time.time() - self._start_time),
        }

        if self.include_details and results:
            response_data["checks"] = results

        if self.include_system_info:
            response_data["system"] = {
                "hostname": platform.node(),
                "python_version": sys.version.split()[0],
            }

        http_status = HTTPStatus.OK if all_healthy else HTTPStatus.SERVICE_UNAVAILABLE
        return (ResponseBuilder()
            .status(http_status)
            .json(response_data)
            .no_cache()
            .build())

    def liveness(self, request: HTTPRequest) -> HTTPResponse:
        # No dependency checks: a failing liveness probe means "restart me".
        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .json({"status": "alive"})
            .no_cache()
            .build())

    def readiness(self, request: HTTPRequest) -> HTTPResponse:
        all_healthy, _ = self._run_checks()
        if all_healthy:
            return (ResponseBuilder()
                .status(HTTPStatus.OK)
                .json({"status": "ready"})
                .no_cache()
                .build())

        return (ResponseBuilder()
            .status(HTTPStatus.SERVICE_UNAVAILABLE)
            .json({"status": "not_ready"})
            .no_cache()
            .build())
