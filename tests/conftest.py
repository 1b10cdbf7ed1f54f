"""
pytest configuration and fixtures.
"""

import json
import socket
import threading
from typing import Generator, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from parkingserver import ParkingServer, ServerConfig
from parkingserver.lot import ParkingRegistry


class FakeClock:
    """Manually advanced clock for fee and timestamp tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds


@pytest.fixture
def sample_get_head() -> bytes:
    """Request head of a GET, without the terminating blank line."""
    return (
        b"GET /api/history?limit=10&type=small HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Complete POST /api/vehicle request with a JSON body."""
    body = json.dumps({"plate": "京A12345", "type": "small"}).encode("utf-8")
    return (
        b"POST /api/vehicle HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Test configuration: loopback, ephemeral port, no snapshot file."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        workers=2,
        max_connections=8,
        read_timeout=1.0,
        request_timeout=3.0,
        capacity=5,
        data_file=None,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> ParkingRegistry:
    """In-memory registry: 5 spaces, default rates, fake clock."""
    return ParkingRegistry(capacity=5, small_rate=5.0, large_rate=8.0, clock=clock)


class RunningServer:
    """A ParkingServer listening on an ephemeral port in a daemon thread."""

    def __init__(self, server: ParkingServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = self.server.start_background(timeout=5.0)

    def stop(self):
        self.server.shutdown(wait=True, timeout=10.0)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def connect(self, timeout: float = 5.0) -> socket.socket:
        return socket.create_connection(("127.0.0.1", self.port), timeout=timeout)

    def request(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> Tuple[int, dict, bytes]:
        """
        Send one request and read the response until the server closes.

        Returns:
            (status code, lowercased headers, body bytes)
        """
        payload = json.dumps(body).encode("utf-8") if body is not None else b""
        lines = [f"{method} {path} HTTP/1.1", "Host: localhost"]
        for name, value in (headers or {}).items():
            lines.append(f"{name}: {value}")
        if payload:
            lines.append("Content-Type: application/json")
            lines.append(f"Content-Length: {len(payload)}")
        raw = ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8") + payload

        with self.connect() as sock:
            sock.sendall(raw)
            return read_response(sock)

    @staticmethod
    def read(sock: socket.socket) -> Tuple[int, dict, bytes]:
        return read_response(sock)


def read_response(sock: socket.socket) -> Tuple[int, dict, bytes]:
    """Read a full response from a socket the server will close."""
    data = b""
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            break
        data += chunk

    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("utf-8").split("\r\n")
    status = int(lines[0].split(" ")[1])
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return status, headers, body


@pytest.fixture
def running_server(config: ServerConfig, registry: ParkingRegistry) -> Generator[RunningServer, None, None]:
    """Server on an ephemeral port, backed by the fake-clock registry."""
    srv = RunningServer(ParkingServer(config, registry=registry))
    srv.start()

    yield srv

    srv.stop()


@pytest.fixture
def server_factory() -> Generator:
    """Build and start extra servers; all are stopped at teardown."""
    started = []

    def factory(config: ServerConfig, registry: Optional[ParkingRegistry] = None) -> RunningServer:
        srv = RunningServer(ParkingServer(config, registry=registry))
        srv.start()
        started.append(srv)
        return srv

    yield factory

    for srv in started:
        srv.stop()
