"""
=============================================================================
SOCKET SERVER
=============================================================================

The listening socket and its accept loop.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │    start(handler)                                                   │
    │        ├──► _create_socket()   SO_REUSEADDR, TCP_NODELAY, 1s poll   │
    │        ├──► bind() / listen()  failure here is fatal, re-raised     │
    │        ├──► _setup_signals()   SIGTERM / SIGINT → shutdown()        │
    │        └──► _accept_loop()     blocks until shutdown()              │
    │                 │                                                   │
    │                 └──► handler(client_socket, address)                │
    │                                                                     │
    │    shutdown()   clears _running; the loop notices within 1s         │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

The accept timeout is the poll interval: accept() wakes at least once a
second to check whether it should stop, instead of blocking forever
waiting for a client that may never come.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig


logger = logging.getLogger(__name__)


ACCEPT_POLL_INTERVAL = 1.0

ConnectionHandler = Callable[[socket.socket, Tuple[str, int]], None]


class SocketServer:
    """
    Low-level TCP listener.

    Usage:
        def on_accept(client_socket, address):
            ...

        server = SocketServer(config)
        server.start(on_accept)  # Blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._ready = threading.Event()
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}
        self._bound_address: Optional[Tuple[str, int]] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (ip, port), which differs from the config when port is 0."""
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(ACCEPT_POLL_INTERVAL)
        return sock

    def _setup_signals(self):
        """
        Route SIGTERM and SIGINT to shutdown().

        Python only lets the main thread install handlers, so a server
        started from another thread (as the tests do) skips this.
        """
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, leaving signal handlers alone")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: ConnectionHandler):
        """
        Bind, listen and accept until shutdown() is called.

        Args:
            connection_handler: Called on the listener thread with each
                accepted (client_socket, address). It must not block.

        Raises:
            OSError: If the socket cannot be created, bound or put into
                listening mode.
        """
        try:
            self._socket = self._create_socket()
            self._socket.bind((self.config.host, self.config.port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to listen on {self.config.host}:{self.config.port}: {e}")
            self._cleanup()
            raise

        self._bound_address = self._socket.getsockname()[:2]
        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()

        logger.info(f"Server listening on {self.address[0]}:{self.address[1]}")
        self._ready.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: ConnectionHandler):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")
            try:
                connection_handler(client_socket, client_address)
            except Exception as e:
                logger.exception(f"Connection handler failed for {client_address[0]}: {e}")
                client_socket.close()

    def shutdown(self):
        """Ask the accept loop to stop. Safe to call from any thread, repeatedly."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False
        self._shutdown_event.set()

    def _cleanup(self):
        self._restore_signals()
        self._ready.clear()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._running = False
        self._shutdown_event.set()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. Used by tests."""
        return self._ready.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._shutdown_event.wait(timeout)
