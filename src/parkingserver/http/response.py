"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

HTTPResponse holds what a handler returns; to_bytes() turns it into what
goes on the wire.

    HTTP/1.1 201 Created\\r\\n
    Content-Type: application/json\\r\\n
    Content-Length: 112\\r\\n                ← added by to_bytes()
    Date: Sat, 18 Oct 2026 08:00:00 GMT\\r\\n ← added by to_bytes()
    Server: ParkingServer/1.0\\r\\n           ← added by to_bytes()
    Connection: close\\r\\n                   ← added by to_bytes()
    \\r\\n
    {"success": true, "message": "Vehicle admitted", "data": {...}}

Every API body uses the same envelope:

    {"success": bool, "message": str, "data": <optional payload>}

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union
import json

from .status_codes import HTTPStatus


@dataclass
class HTTPResponse:
    """
    An HTTP response to be sent to the client.

    Use ResponseBuilder or the helper functions below to construct one.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {self.status} {self.status.phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    @property
    def json(self) -> Any:
        """Decoded JSON body. Handy in tests."""
        return json.loads(self.body.decode("utf-8")) if self.body else None

    def to_bytes(self, server_name: str = "ParkingServer/1.0") -> bytes:
        """
        Serialize for socket.sendall().

        Content-Length, Date, Server and Connection are filled in unless
        the handler set them. The server always closes after one
        response, so Connection defaults to "close".
        """
        response_headers = dict(self.headers)
        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)
        response_headers.setdefault("Connection", "close")

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for responses.

        response = (ResponseBuilder()
            .status(HTTPStatus.CREATED)
            .json({"success": True, "message": "Vehicle admitted"})
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def json(self, data: Any) -> "ResponseBuilder":
        """
        Serialize data as the JSON body.

        ensure_ascii=False keeps plates such as "京A12345" readable.
        """
        self._body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def no_cache(self) -> "ResponseBuilder":
        self._headers["Cache-Control"] = "no-store"
        return self

    def cache(self, max_age: int = 3600) -> "ResponseBuilder":
        self._headers["Cache-Control"] = f"public, max-age={max_age}"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an RFC 7231 HTTP-date.

    Example: "Sat, 18 Oct 2026 08:00:00 GMT"
    """
    weekdays = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    return (
        f"{weekdays[dt.weekday()]}, {dt.day:02d} {months[dt.month - 1]} "
        f"{dt.year} {dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def json_response(
    status: HTTPStatus = HTTPStatus.OK,
    success: bool = True,
    message: str = "",
    data: Optional[Any] = None,
) -> HTTPResponse:
    """Build a response with the standard {"success", "message", "data"} envelope."""
    payload: Dict[str, Any] = {"success": success, "message": message}
    if data is not None:
        payload["data"] = data
    return ResponseBuilder().status(status).json(payload).no_cache().build()


def error_response(status: HTTPStatus, message: str) -> HTTPResponse:
    return json_response(status, success=False, message=message)


def no_content() -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NO_CONTENT).build()


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    return error_response(HTTPStatus.BAD_REQUEST, message)


def forbidden(message: str = "Forbidden") -> HTTPResponse:
    return error_response(HTTPStatus.FORBIDDEN, message)


def not_found(message: str = "Not Found") -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND, message)


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    response = error_response(HTTPStatus.METHOD_NOT_ALLOWED, "Method not allowed")
    response.set_header("Allow", ", ".join(sorted(allowed_methods)))
    return response


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)


def service_unavailable(message: str = "Service Unavailable") -> HTTPResponse:
    return error_response(HTTPStatus.SERVICE_UNAVAILABLE, message)
