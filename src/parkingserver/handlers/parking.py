"""
=============================================================================
PARKING API HANDLERS
=============================================================================

    POST    /api/vehicle              park a vehicle {"plate", "type", "wait"?}
    DELETE  /api/vehicle/:plate       check a vehicle out, returns the fee
    GET     /api/vehicle/:plate       look up a vehicle (present or past)
    GET     /api/status               capacity / occupied / available
    GET     /api/rate                 current hourly rates
    PUT     /api/rate                 {"smallRate", "largeRate"}
    GET     /api/history              finished stays
    GET     /api/current-vehicles     vehicles in the lot right now

Every response body is {"success": bool, "message": str, "data": ...}.
Registry failures come back as values and are translated to a status
code here. Nothing in this module raises for a business error.

=============================================================================
"""

import logging
import math
from typing import Any, Dict, Optional

from ..http.request import HTTPParseError, HTTPRequest
from ..http.response import HTTPResponse, bad_request, json_response
from ..http.router import Router
from ..http.status_codes import HTTPStatus
from ..lot.registry import Failure, ParkingRegistry, RegistryResult


logger = logging.getLogger(__name__)


FAILURE_STATUS = {
    Failure.DUPLICATE: HTTPStatus.CONFLICT,
    Failure.FULL: HTTPStatus.CONFLICT,
    Failure.TIMEOUT: HTTPStatus.CONFLICT,
    Failure.NOT_FOUND: HTTPStatus.NOT_FOUND,
    Failure.ALREADY_RELEASED: HTTPStatus.CONFLICT,
    Failure.INVALID_RATE: HTTPStatus.BAD_REQUEST,
    Failure.INVALID_CATEGORY: HTTPStatus.BAD_REQUEST,
}


def failure_response(result: RegistryResult) -> HTTPResponse:
    """Translate a failed RegistryResult into an error response."""
    status = FAILURE_STATUS.get(result.failure, HTTPStatus.BAD_REQUEST)
    response = json_response(status, success=False, message=result.message)
    response.headers["X-Failure"] = result.failure.value
    return response


def _json_object(request: HTTPRequest) -> Dict[str, Any]:
    """Body as a JSON object, or HTTPParseError."""
    data = request.json
    if not isinstance(data, dict):
        raise HTTPParseError("Request body must be a JSON object")
    return data


def _number(value: Any, name: str) -> float:
    """Accept 5, 5.0 or "5.0"; reject everything else."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number") from None
    if not math.isfinite(number):
        raise ValueError(f"{name} must be a finite number")
    return number


class ParkingHandlers:
    """
    HTTP handlers over a ParkingRegistry.

    Usage:
        handlers = ParkingHandlers(registry, max_admit_wait=30.0)
        handlers.register(router)
    """

    def __init__(self, registry: ParkingRegistry, max_admit_wait: float = 30.0):
        """
        Args:
            registry: The lot to operate on.
            max_admit_wait: Cap on the "wait" a client may request when
                parking into a full lot. Keeps a worker from being held
                longer than this by one request.
        """
        self.registry = registry
        self.max_admit_wait = max_admit_wait

    def register(self, router: Router) -> None:
        api = router.group("/api")
        api.post("/vehicle", name="admit")(self.admit)
        api.delete("/vehicle/:plate", name="release")(self.release)
        api.get("/vehicle/:plate", name="query")(self.query)
        api.get("/status", name="status")(self.status)
        api.get("/rate", name="get_rates")(self.get_rates)
        api.put("/rate", name="set_rates")(self.set_rates)
        api.get("/history", name="history")(self.history)
        api.get("/current-vehicles", name="current_vehicles")(self.current_vehicles)

    # =========================================================================
    # VEHICLES
    # =========================================================================

    def admit(self, request: HTTPRequest) -> HTTPResponse:
        try:
            data = _json_object(request)
        except HTTPParseError as e:
            return bad_request(str(e))

        plate = data.get("plate")
        category = data.get("type")
        if not isinstance(plate, str) or not plate.strip():
            return bad_request("Missing required field: plate")
        if category is None:
            return bad_request("Missing required field: type")

        wait: Optional[float] = 0.0
        if "wait" in data:
            try:
                wait = _number(data["wait"], "wait")
            except ValueError as e:
                return bad_request(str(e))
            if wait < 0:
                return bad_request("wait must be >= 0")
        wait = min(wait, self.max_admit_wait)

        result = self.registry.admit(plate.strip(), category, wait_timeout=wait)
        if not result:
            return failure_response(result)

        return json_response(
            HTTPStatus.CREATED,
            message="Vehicle admitted",
            data=result.record.to_dict(),
        )

    def release(self, request: HTTPRequest) -> HTTPResponse:
        plate = request.path_params["plate"]
        result = self.registry.release(plate)
        if not result:
            return failure_response(result)

        record = result.record
        return json_response(
            message="Vehicle released",
            data={
                "plate": record.plate,
                "type": record.category.value,
                "entryTime": record.entry_time,
                "exitTime": record.exit_time,
                "hours": round(record.duration_hours, 4),
                "fee": record.fee,
            },
        )

    def query(self, request: HTTPRequest) -> HTTPResponse:
        result = self.registry.query(request.path_params["plate"])
        if not result:
            return failure_response(result)
        return json_response(message="Vehicle found", data=result.record.to_dict())

    # =========================================================================
    # LOT
    # =========================================================================

    def status(self, request: HTTPRequest) -> HTTPResponse:
        status = self.registry.status()
        return json_response(
            message="Status retrieved",
            data={
                "capacity": status.capacity,
                "occupied": status.occupied,
                "available": status.available,
            },
        )

    def get_rates(self, request: HTTPRequest) -> HTTPResponse:
        status = self.registry.status()
        return json_response(
            message="Rates retrieved",
            data={"smallRate": status.small_rate, "largeRate": status.large_rate},
        )

    def set_rates(self, request: HTTPRequest) -> HTTPResponse:
        try:
            data = _json_object(request)
        except HTTPParseError as e:
            return bad_request(str(e))

        for field_name in ("smallRate", "largeRate"):
            if field_name not in data:
                return bad_request(f"Missing required field: {field_name}")

        try:
            small_rate = _number(data["smallRate"], "smallRate")
            large_rate = _number(data["largeRate"], "largeRate")
        except ValueError as e:
            return bad_request(str(e))

        result = self.registry.set_rates(small_rate, large_rate)
        if not result:
            return failure_response(result)

        return json_response(
            message="Rates updated",
            data={"smallRate": small_rate, "largeRate": large_rate},
        )

    def history(self, request: HTTPRequest) -> HTTPResponse:
        records = [r.to_dict() for r in self.registry.list_history()]
        return json_response(message="History retrieved", data=records)

    def current_vehicles(self, request: HTTPRequest) -> HTTPResponse:
        status = self.registry.status()
        rates = {"small": status.small_rate, "large": status.large_rate}

        vehicles = [
            {
                "plate": r.plate,
                "type": r.category.value,
                "entryTime": r.entry_time,
                "hourlyRate": rates[r.category.value],
            }
            for r in self.registry.list_current()
        ]
        return json_response(message="Current vehicles retrieved", data=vehicles)
