"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server sends, with their reason phrases.

    2xx  success        200 OK, 201 Created, 204 No Content
    3xx  redirection    304 Not Modified (static files)
    4xx  client error   400, 403, 404, 405, 409
    5xx  server error   500 (framing or handler failure), 503 (ceiling)

How parking outcomes map onto them:

    ┌───────────────────────────────┬──────────────────────────────────┐
    │ Outcome                       │ Status                           │
    ├───────────────────────────────┼──────────────────────────────────┤
    │ vehicle admitted              │ 201 Created                      │
    │ plate already in the lot      │ 409 Conflict                     │
    │ lot full (now or after wait)  │ 409 Conflict                     │
    │ plate unknown                 │ 404 Not Found                    │
    │ plate already left            │ 409 Conflict                     │
    │ bad rate / category / JSON    │ 400 Bad Request                  │
    │ too many connections          │ 503 Service Unavailable          │
    └───────────────────────────────┴──────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes as an IntEnum.

    Members compare equal to plain ints (HTTPStatus.OK == 200) and print
    as the number in f-strings.
    """

    OK = 200
    CREATED = 201
    NO_CONTENT = 204

    NOT_MODIFIED = 304

    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    CONFLICT = 409
    PAYLOAD_TOO_LARGE = 413
    REQUEST_HEADER_FIELDS_TOO_LARGE = 431

    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    def __str__(self) -> str:
        return str(self.value)

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line, e.g. "Not Found"."""
        return _STATUS_PHRASES.get(self.value, "Unknown")

    @property
    def is_success(self) -> bool:
        return 200 <= self.value < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.value < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.value < 600


_STATUS_PHRASES = {
    200: "OK",
    201: "Created",
    204: "No Content",
    304: "Not Modified",
    400: "Bad Request",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    408: "Request Timeout",
    409: "Conflict",
    413: "Payload Too Large",
    431: "Request Header Fields Too Large",
    500: "Internal Server Error",
    503: "Service Unavailable",
    505: "HTTP Version Not Supported",
}
