"""
=============================================================================
PARKING SERVER
=============================================================================

Ties the components together into the running service.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │                        ┌─────────────────┐                          │
    │                        │  ParkingServer  │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                   │
    │       ┌──────────────┬──────────┼──────────┬──────────────┐         │
    │       ▼              ▼          ▼          ▼              ▼         │
    │ ┌────────────┐ ┌──────────┐ ┌────────┐ ┌────────┐ ┌──────────────┐  │
    │ │SocketServer│ │Connection│ │ Worker │ │ Router │ │   Parking    │  │
    │ │ (listener) │ │ Limiter  │ │  Pool  │ │        │ │   Registry   │  │
    │ └────────────┘ └──────────┘ └────────┘ └────────┘ └──────┬───────┘  │
    │                                                          │          │
    │                                                   ┌──────▼───────┐  │
    │                                                   │SnapshotStore │  │
    │                                                   └──────────────┘  │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    LISTENER THREAD
    1. accept()
    2. limiter.try_acquire()
         └── at the ceiling: write 503, close. The pool is never touched.
    3. pool.submit(_process_connection)

    WORKER THREAD
    4. Connection.read_request()     time-bounded, size-bounded framing
    5. Logging → CORS → Router → handler
    6. send response, shut down and close the socket
    7. release the connection slot

    Any framing or handler failure becomes a 500 with a JSON body; only
    that connection is affected. One request per connection.

=============================================================================
SHUTDOWN
=============================================================================

    SIGINT / SIGTERM / shutdown()
    1. Listener stops accepting
    2. Queued connections are discarded (closed, slot released)
    3. In-flight requests run to completion
    4. Workers are joined

=============================================================================
"""

import logging
import socket
import threading
from typing import Optional, Callable, Tuple

from .config import ServerConfig
from .core import (
    SocketServer, Connection, ConnectionLimiter, ConnectionSlot,
    FramingError, WorkerPool,
)
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse, HTTPStatus, Router,
    error_response, service_unavailable,
)
from .handlers import (
    ParkingHandlers, HealthHandler, StaticFileHandler,
    registry_check, pool_check,
)
from .lot import ParkingRegistry, SnapshotStore
from .middleware import MiddlewarePipeline, Middleware, LoggingMiddleware, CORSMiddleware


logger = logging.getLogger(__name__)


class ParkingServer:
    """
    The parking lot HTTP service.

    =========================================================================
    USAGE
    =========================================================================

        server = ParkingServer(ServerConfig(port=8080, capacity=50))
        server.run()  # Blocks until SIGINT / SIGTERM

    In tests, with an ephemeral port and an injected registry:

        server = ParkingServer(ServerConfig(port=0), registry=registry)
        thread = server.start_background()
        host, port = server.address
        ...
        server.shutdown(wait=True)

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        registry: Optional[ParkingRegistry] = None,
    ):
        """
        Args:
            config: Server configuration. Defaults are used if not provided.
            registry: Lot to serve. Built from config (capacity, rates,
                data_file) if not provided.

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        # ─────────────────────────────────────────────────────────────────
        # CORE COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        self._socket_server = SocketServer(self.config)
        self._pool = WorkerPool(num_workers=self.config.workers)
        self._limiter = ConnectionLimiter(self.config.max_connections)
        self._parser = RequestParser()

        # ─────────────────────────────────────────────────────────────────
        # APPLICATION COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        if registry is None:
            store = SnapshotStore(self.config.data_file) if self.config.data_file else None
            registry = ParkingRegistry(
                capacity=self.config.capacity,
                small_rate=self.config.small_rate,
                large_rate=self.config.large_rate,
                store=store,
            )
        self._registry = registry

        self._router = Router()
        ParkingHandlers(registry, max_admit_wait=self.config.max_admit_wait).register(self._router)

        health = HealthHandler()
        health.add_check("lot", registry_check(registry))
        health.add_check("workers", pool_check(self._pool))
        health.register(self._router)

        if self.config.static_dir:
            static = StaticFileHandler(self.config.static_dir)
            # Registered last: the catch-all must not shadow the routes above.
            self._router.get("/*path", name="static")(static.handle)

        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware(skip_paths=["/health/live"]))
        if self.config.cors:
            self._middleware.add(CORSMiddleware())

        # ─────────────────────────────────────────────────────────────────
        # RUNTIME STATE
        # ─────────────────────────────────────────────────────────────────
        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None
        self._stopped = threading.Event()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def router(self) -> Router:
        return self._router

    @property
    def registry(self) -> ParkingRegistry:
        return self._registry

    @property
    def pool(self) -> WorkerPool:
        return self._pool

    @property
    def limiter(self) -> ConnectionLimiter:
        return self._limiter

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the real port once listening with port=0."""
        return self._socket_server.address

    def use(self, middleware: Middleware) -> "ParkingServer":
        """Add middleware inside the logging and CORS layers. Call before run()."""
        self._middleware.add(middleware)
        return self

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Start the server (blocking).

        Returns after shutdown() or SIGINT / SIGTERM, once the workers
        have finished.

        Raises:
            OSError: If the listening socket cannot be set up.
        """
        self._setup_logging()
        self._stopped.clear()

        self._handler = self._middleware.wrap(self._router.handle)
        self._pool.start()

        logger.info(
            f"Starting parking server on {self.config.host}:{self.config.port} "
            f"(capacity {self._registry.capacity}, {self.config.workers} workers)"
        )
        self._print_startup_banner()

        try:
            self._socket_server.start(self._on_accept)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def start_background(self, timeout: float = 5.0) -> threading.Thread:
        """
        Run the server in a daemon thread and wait until it is listening.

        Raises:
            RuntimeError: If the socket is not listening within timeout.
        """
        thread = threading.Thread(target=self.run, name="parking-server", daemon=True)
        thread.start()
        if not self._socket_server.wait_until_ready(timeout):
            self.shutdown()
            raise RuntimeError(f"Server did not start listening within {timeout}s")
        return thread

    def shutdown(self, wait: bool = False, timeout: Optional[float] = None) -> bool:
        """
        Stop accepting and wind down. Safe to call from any thread.

        Args:
            wait: Block until run() has finished shutting down.
            timeout: Upper bound on the wait.

        Returns:
            True if the server has stopped (always True when wait is False).
        """
        self._socket_server.shutdown()
        if wait:
            return self._stopped.wait(timeout)
        return True

    def _print_startup_banner(self):
        host, port = self.address
        print()
        print("=" * 64)
        print(f"  {self.config.server_name} running")
        print(f"  http://{host}:{port}")
        print(f"  Capacity: {self._registry.capacity}  "
              f"Workers: {self.config.workers}  "
              f"Max connections: {self.config.max_connections}")
        print("  Press Ctrl+C to stop")
        print("=" * 64)
        for line in self._router.format_routes():
            print(f"  {line}")
        print()

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(level=level, format=self.config.log_format)
        logging.getLogger("parkingserver").setLevel(level)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._pool.shutdown(wait=True, timeout=self.config.request_timeout)
        self._stopped.set()
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _on_accept(self, client_socket: socket.socket, address: Tuple[str, int]):
        """
        Admit a connection or turn it away (runs on the listener thread).

        Must not block: the only I/O here is the short 503 write for a
        rejected connection.
        """
        slot = self._limiter.try_acquire()
        if slot is None:
            logger.warning(
                f"Connection limit reached ({self._limiter.max_connections}), "
                f"rejecting {address[0]}"
            )
            self._reject(client_socket)
            return

        try:
            conn = Connection(
                socket=client_socket,
                address=address,
                buffer_size=self.config.buffer_size,
                read_timeout=self.config.read_timeout,
                request_timeout=self.config.request_timeout,
                max_header_size=self.config.max_header_size,
                max_body_size=self.config.max_body_size,
            )
        except Exception:
            slot.release()
            raise

        def discard():
            conn.close()
            slot.release()

        submitted = self._pool.submit(
            self._process_connection,
            args=(conn, slot),
            on_discard=discard,
        )
        if not submitted:
            logger.warning(f"[{conn.id}] Worker pool closed, rejecting connection")
            conn.send_response(self._unavailable_bytes())
            discard()

    def _reject(self, client_socket: socket.socket):
        """Best-effort 503 on a socket we are not going to serve."""
        try:
            client_socket.settimeout(1.0)
            client_socket.sendall(self._unavailable_bytes())
        except OSError as e:
            logger.debug(f"Could not send 503: {e}")
        finally:
            client_socket.close()

    def _unavailable_bytes(self) -> bytes:
        response = service_unavailable("Server busy, try again later")
        return response.to_bytes(self.config.server_name)

    def _process_connection(self, conn: Connection, slot: ConnectionSlot):
        """
        Serve one request (runs on a worker thread).

        The slot and the socket are released on every path out of here,
        exceptions included.
        """
        with slot, conn:
            try:
                request = conn.read_request(self._parser)
            except (FramingError, HTTPParseError) as e:
                logger.warning(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                self._send_error(conn, str(e))
                return
            except Exception as e:
                logger.exception(f"[{conn.id}] Unexpected error reading request: {e}")
                self._send_error(conn, f"Internal Server Error: {e}")
                return

            try:
                response = self._handler(request)
            except Exception as e:
                logger.exception(f"[{conn.id}] Handler error: {e}")
                self._send_error(conn, f"Internal Server Error: {e}")
                return

            conn.send_response(response.to_bytes(self.config.server_name))

    def _send_error(
        self,
        conn: Connection,
        message: str,
        status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR,
    ):
        response = error_response(status, message)
        conn.send_response(response.to_bytes(self.config.server_name))
