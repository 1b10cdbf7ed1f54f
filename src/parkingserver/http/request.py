"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the header block that the framing layer has read off the socket
into an HTTPRequest. The body is read separately, once the parser has
reported how long it is.

=============================================================================
WHAT THE HEADER BLOCK LOOKS LIKE
=============================================================================

    POST /api/vehicle HTTP/1.1\r\n          ← request line
    Host: localhost:8080\r\n                ← headers
    Content-Type: application/json\r\n
    Content-Length: 34\r\n
    \r\n                                    ← terminator (not included)
    {"plate": "京A12345", "type": "small"}  ← body, read afterwards

Header names are case-insensitive, so they are stored lowercase.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from urllib.parse import parse_qs, urlparse, unquote
import re
import json


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the status code that best describes the problem; the server
    reports framing and parse failures as 500 with the message.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         GET, POST, PUT, DELETE, OPTIONS...
        path:           URL-decoded path without the query string.
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Header name (lowercase) -> value.
        query_params:   "?a=1&a=2" -> {"a": ["1", "2"]}.
        body:           Raw body bytes, exactly Content-Length long.
        path_params:    Filled in by the router: "/api/vehicle/:plate".
        client_address: (ip, port) of the peer.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""
    path_params: Dict[str, str] = field(default_factory=dict)
    client_address: tuple[str, int] = ("", 0)

    _body_json: Optional[Any] = field(default=None, repr=False)

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters ("application/json")."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        """
        Declared body length. 0 when the header is absent.

        Raises:
            HTTPParseError: If the header is present but not a
                non-negative integer.
        """
        value = self.headers.get("content-length")
        if value is None:
            return 0
        if not (value.isascii() and value.isdigit()):
            raise HTTPParseError(f"Invalid Content-Length: {value!r}")
        return int(value)

    @property
    def json(self) -> Any:
        """
        The body parsed as JSON, cached after the first access.

        Raises:
            HTTPParseError: If the body is not valid JSON.
        """
        if self._body_json is None and self.body:
            try:
                self._body_json = json.loads(self.body.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise HTTPParseError(f"Invalid JSON body: {e}")
        return self._body_json

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses a request's header block.

    REQUEST_LINE_PATTERN: METHOD SP URI SP HTTP/x.y
    HEADER_PATTERN:       name ":" OWS value
    """

    VALID_METHODS = {
        "GET",
        "POST",
        "PUT",
        "DELETE",
        "PATCH",
        "HEAD",
        "OPTIONS",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def parse_head(
        self,
        head: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse the request line and headers.

        Args:
            head: Everything before the blank line, without the
                terminating \\r\\n\\r\\n.
            client_address: Peer (ip, port), copied onto the request.

        Returns:
            An HTTPRequest with an empty body.

        Raises:
            HTTPParseError: If the request line is malformed or uses an
                unknown method or HTTP version.
        """
        text = head.decode("utf-8", errors="replace")
        lines = text.split("\r\n")
        if not lines or not lines[0]:
            raise HTTPParseError("Empty request")

        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            client_address=client_address,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, list[str]], str]:
        """
        Split "GET /api/vehicle/%E4%BA%ACA1?x=1 HTTP/1.1" into its parts.

        The path is URL-decoded here, so plates with non-ASCII characters
        reach the handlers as text.
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        if ".." in path:
            raise HTTPParseError("Invalid path: contains ..")

        return method, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse "Name: value" lines.

        Names are lowercased and leading whitespace is trimmed from values.
        A repeated header is joined with ", ". Lines without a colon are
        skipped.
        """
        headers: Dict[str, str] = {}

        for line in lines:
            if not line:
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers
