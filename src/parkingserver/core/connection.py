"""
=============================================================================
CONNECTION FRAMING
=============================================================================

Reads exactly one HTTP request off a client socket. Every read has a
size limit and a time limit.

=============================================================================
THE PROBLEM
=============================================================================

TCP is a byte stream. A request may arrive in one recv() or in fifty,
and a client may stop sending at any point:

    recv() #1: "POST /api/vehicle HTT"
    recv() #2: "P/1.1\\r\\nContent-Length: 34\\r\\n\\r\\n{\\"pla"
    recv() #3: (nothing... client went quiet)

A worker blocked forever on recv() #3 is a worker lost. So:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         FRAMING LIMITS                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │  read_timeout      each recv() gives up after this many seconds     │
    │  request_timeout   the whole request must arrive within this        │
    │                    (stops clients that send one byte every          │
    │                    read_timeout - 0.1 seconds)                      │
    │  max_header_size   no \\r\\n\\r\\n within this many bytes → fail      │
    │  max_body_size     Content-Length above this → fail                 │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Breaking any limit raises FramingError and the server answers 500.

=============================================================================
READ SEQUENCE
=============================================================================

    1. recv() chunks into a buffer until \\r\\n\\r\\n appears
    2. RequestParser.parse_head() on the bytes before it
    3. Content-Length → read until the buffer holds that many body bytes
       (bytes that arrived with the header count)
    4. hand back the HTTPRequest

One request per connection; the server closes the socket after replying.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..http.request import HTTPRequest, RequestParser


logger = logging.getLogger(__name__)


HEADER_TERMINATOR = b"\r\n\r\n"


class FramingError(Exception):
    """Raised when a request cannot be read off the connection."""


class ConnectionState(Enum):
    """Connection lifecycle states, used in debug logging."""
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client connection that yields one request.

    Attributes:
        socket: The accepted client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier for log lines.
        state: Current lifecycle state.
        created_at: Accept time.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    # Limits (from ServerConfig)
    buffer_size: int = 8192
    read_timeout: float = 5.0
    request_timeout: float = 30.0
    max_header_size: int = 8192
    max_body_size: int = 1024 * 1024

    _buffer: bytearray = field(default_factory=bytearray, repr=False)
    _deadline: Optional[float] = field(default=None, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.read_timeout)
        try:
            self.socket.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        except OSError as e:
            logger.debug(f"[{self.id}] Could not enable SO_KEEPALIVE: {e}")

    @property
    def client_ip(self) -> str:
        return self.address[0] if self.address else ""

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self, parser: RequestParser) -> HTTPRequest:
        """
        Read and parse one complete request.

        Args:
            parser: Parser for the request line and headers.

        Returns:
            The request, body included.

        Raises:
            FramingError: Timeout, early close, or a size limit exceeded.
            HTTPParseError: Malformed request line or Content-Length.
        """
        self.state = ConnectionState.READING
        self._deadline = time.monotonic() + self.request_timeout

        head = self._read_head()
        request = parser.parse_head(bytes(head), self.address)

        length = request.content_length
        if length > self.max_body_size:
            raise FramingError(
                f"Request body too large: {length} bytes (limit {self.max_body_size})"
            )
        request.body = self._read_body(length)

        self.state = ConnectionState.PROCESSING
        return request

    def _read_head(self) -> bytearray:
        """Read until the header terminator and return what precedes it."""
        while True:
            end = self._buffer.find(HEADER_TERMINATOR)
            if end != -1:
                if end + len(HEADER_TERMINATOR) > self.max_header_size:
                    raise FramingError(f"Request header too large (limit {self.max_header_size} bytes)")
                head = self._buffer[:end]
                del self._buffer[:end + len(HEADER_TERMINATOR)]
                return head

            if len(self._buffer) >= self.max_header_size:
                raise FramingError(f"Request header too large (limit {self.max_header_size} bytes)")

            chunk = self._recv(self.buffer_size)
            if not chunk:
                if self._buffer:
                    raise FramingError("Connection closed before end of headers")
                raise FramingError("Connection closed before any data was sent")
            self._buffer += chunk

    def _read_body(self, length: int) -> bytes:
        """Read exactly `length` body bytes. Anything after them is ignored."""
        while len(self._buffer) < length:
            chunk = self._recv(min(self.buffer_size, length - len(self._buffer)))
            if not chunk:
                raise FramingError(
                    f"Connection closed after {len(self._buffer)} of {length} body bytes"
                )
            self._buffer += chunk

        body = bytes(self._buffer[:length])
        self._buffer.clear()
        return body

    def _recv(self, size: int) -> bytes:
        """
        One time-bounded recv().

        Returns b"" if the peer closed or reset the connection.

        Raises:
            FramingError: If this read or the whole request runs out of time.
        """
        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            raise FramingError(f"Request not received within {self.request_timeout}s")

        self.socket.settimeout(min(self.read_timeout, remaining))
        try:
            return self.socket.recv(size)
        except socket.timeout:
            raise FramingError(f"Timed out waiting for request data ({self.state.value})") from None
        except (ConnectionResetError, BrokenPipeError):
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send the whole response with sendall().

        Returns:
            True if sent, False if the client had gone away.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """Shut down both directions and release the socket. Idempotent."""
        if self.state == ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer already gone
            pass

        try:
            self.socket.close()
        except OSError as e:
            logger.debug(f"[{self.id}] Error closing socket: {e}")

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
