"""
Unit tests for ParkingServer's accept path, without a listening socket.
"""

import socket

import pytest

from parkingserver import ParkingServer
from parkingserver import server as server_module


class TestOnAccept:
    """Tests for ParkingServer._on_accept."""

    def test_slot_released_when_connection_setup_fails(self, config, registry, monkeypatch):
        """A socket that cannot be wrapped does not leak a connection slot."""
        srv = ParkingServer(config, registry=registry)

        def broken_connection(**kwargs):
            raise OSError("bad file descriptor")

        monkeypatch.setattr(server_module, "Connection", broken_connection)
        server_sock, client_sock = socket.socketpair()
        try:
            with pytest.raises(OSError):
                srv._on_accept(server_sock, ("127.0.0.1", 5555))
        finally:
            server_sock.close()
            client_sock.close()

        assert srv.limiter.in_flight == 0
        assert srv.pool.stats["tasks"]["submitted"] == 0

    def test_rejected_at_ceiling_without_pool(self, config, registry):
        """At the ceiling the listener answers 503 itself."""
        config.max_connections = 1
        srv = ParkingServer(config, registry=registry)
        held = srv.limiter.try_acquire()

        server_sock, client_sock = socket.socketpair()
        client_sock.settimeout(2.0)
        try:
            srv._on_accept(server_sock, ("127.0.0.1", 5555))
            data = client_sock.recv(4096)
        finally:
            client_sock.close()
            held.release()

        assert data.startswith(b"HTTP/1.1 503")
        assert srv.pool.stats["tasks"]["submitted"] == 0
        assert srv.limiter.rejected == 1
