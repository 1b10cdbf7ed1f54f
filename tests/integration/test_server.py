"""
Integration tests: a real ParkingServer on an ephemeral port, real sockets.
"""

import json
import threading
import time


class TestParkingAPI:
    """End-to-end requests against the running server."""

    def test_admit_query_release(self, running_server, clock):
        """The full life of one vehicle over HTTP."""
        status, headers, body = running_server.request(
            "POST", "/api/vehicle", {"plate": "京A12345", "type": "small"}
        )
        assert status == 201
        assert headers["content-type"].startswith("application/json")
        assert headers["connection"] == "close"
        assert json.loads(body)["data"]["plate"] == "京A12345"

        clock.advance(7200)

        status, _, body = running_server.request("GET", "/api/vehicle/%E4%BA%ACA12345")
        assert status == 200
        assert json.loads(body)["data"]["exitTime"] == 0

        status, _, body = running_server.request("DELETE", "/api/vehicle/%E4%BA%ACA12345")
        assert status == 200
        assert json.loads(body)["data"]["fee"] == 10.0

        status, _, body = running_server.request("GET", "/api/history")
        assert [r["plate"] for r in json.loads(body)["data"]] == ["京A12345"]

    def test_duplicate_is_conflict(self, running_server):
        """Second admit of the same plate is 409."""
        running_server.request("POST", "/api/vehicle", {"plate": "A1", "type": "small"})
        status, _, body = running_server.request("POST", "/api/vehicle", {"plate": "A1", "type": "large"})

        assert status == 409
        assert json.loads(body)["success"] is False

    def test_rates_roundtrip(self, running_server):
        """PUT then GET /api/rate."""
        status, _, _ = running_server.request("PUT", "/api/rate", {"smallRate": 6, "largeRate": 10})
        assert status == 200

        _, _, body = running_server.request("GET", "/api/rate")
        assert json.loads(body)["data"] == {"smallRate": 6.0, "largeRate": 10.0}

    def test_unknown_route(self, running_server):
        """404 with the JSON envelope."""
        status, _, body = running_server.request("GET", "/api/nothing")

        assert status == 404
        assert json.loads(body)["success"] is False

    def test_cors_headers(self, running_server):
        """API responses carry CORS headers and preflight is 204."""
        _, headers, _ = running_server.request("GET", "/api/status")
        assert headers["access-control-allow-origin"] == "*"

        status, headers, body = running_server.request("OPTIONS", "/api/vehicle")
        assert status == 204
        assert "PUT" in headers["access-control-allow-methods"]
        assert body == b""

    def test_health(self, running_server):
        """/health reports the lot and the workers."""
        status, _, body = running_server.request("GET", "/health")

        assert status == 200
        checks = json.loads(body)["checks"]
        assert checks["lot"]["status"] == "healthy"
        assert checks["workers"]["status"] == "healthy"

    def test_concurrent_admits_respect_capacity(self, config, registry, server_factory):
        """Ten clients race for five spaces: five 201s, five 409s."""
        config.max_connections = 32
        config.workers = 4
        srv = server_factory(config, registry)
        results = []
        lock = threading.Lock()

        def park(i):
            status, _, _ = srv.request("POST", "/api/vehicle", {"plate": f"P{i}", "type": "small"})
            with lock:
                results.append(status)

        threads = [threading.Thread(target=park, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10.0)

        assert sorted(results) == [201] * 5 + [409] * 5
        assert registry.occupied == 5


class TestBadClients:
    """Malformed and slow clients only affect their own connection."""

    def test_malformed_request_gets_500(self, running_server):
        """Garbage instead of a request line is answered with a JSON 500."""
        with running_server.connect() as sock:
            sock.sendall(b"NOT AN HTTP REQUEST\r\n\r\n")
            status, headers, body = running_server.read(sock)

        assert status == 500
        assert headers["content-type"].startswith("application/json")
        assert json.loads(body)["success"] is False

    def test_stalled_client_is_dropped(self, running_server):
        """A client that sends nothing gets a 500 once read_timeout passes."""
        start = time.monotonic()
        with running_server.connect() as sock:
            sock.sendall(b"GET /api/status HTTP/1.1\r\n")
            status, _, body = running_server.read(sock)

        assert status == 500
        assert "Timed out" in json.loads(body)["message"]
        assert time.monotonic() - start < 4.0

    def test_server_keeps_serving_after_bad_client(self, running_server):
        """A failed connection leaves the server healthy."""
        with running_server.connect() as sock:
            sock.sendall(b"POST /api/vehicle HTTP/1.1\r\nContent-Length: abc\r\n\r\n")
            running_server.read(sock)

        status, _, _ = running_server.request("GET", "/api/status")
        assert status == 200

    def test_unicode_digit_content_length_gets_500(self, running_server):
        """A Content-Length of Unicode digits is answered, not dropped."""
        with running_server.connect() as sock:
            sock.sendall("POST /api/vehicle HTTP/1.1\r\nContent-Length: ²\r\n\r\n".encode("utf-8"))
            status, _, body = running_server.read(sock)

        assert status == 500
        assert "Content-Length" in json.loads(body)["message"]

    def test_handler_exception_is_500(self, running_server):
        """An exception in a handler becomes a 500 for that request only."""
        def broken(request):
            raise RuntimeError("wheel fell off")

        running_server.server.router.get("/broken")(broken)

        status, _, body = running_server.request("GET", "/broken")
        assert status == 500
        assert "wheel fell off" in json.loads(body)["message"]

        assert running_server.request("GET", "/api/status")[0] == 200


class TestConnectionCeiling:
    """Connections past max_connections get 503 from the listener."""

    def test_over_ceiling_gets_503(self, config, registry, server_factory):
        """With one slot taken by a stalled client, the next is turned away."""
        config.max_connections = 1
        config.workers = 1
        config.read_timeout = 2.0
        srv = server_factory(config, registry)

        staller = srv.connect()
        time.sleep(0.3)
        submitted_before = srv.server.pool.stats["tasks"]["submitted"]

        with srv.connect() as second:
            status, _, body = srv.read(second)

        assert srv.server.pool.stats["tasks"]["submitted"] == submitted_before == 1

        assert status == 503
        assert json.loads(body)["success"] is False
        assert srv.server.limiter.rejected >= 1

        staller.close()
        deadline = time.monotonic() + 5.0
        while srv.server.limiter.in_flight and time.monotonic() < deadline:
            time.sleep(0.05)

        assert srv.request("GET", "/api/status")[0] == 200


class TestPersistence:
    """State survives a restart through the snapshot file."""

    def test_restart_keeps_vehicles(self, config, tmp_path, server_factory):
        """A vehicle parked before a restart is still there after it."""
        config.data_file = str(tmp_path / "lot.dat")

        first = server_factory(config)
        assert first.request("POST", "/api/vehicle", {"plate": "KEEP1", "type": "large"})[0] == 201
        assert first.request("PUT", "/api/rate", {"smallRate": 3, "largeRate": 4})[0] == 200
        first.stop()

        second = server_factory(config)
        status, _, body = second.request("GET", "/api/vehicle/KEEP1")
        assert status == 200
        assert json.loads(body)["data"]["type"] == "large"

        _, _, body = second.request("GET", "/api/rate")
        assert json.loads(body)["data"] == {"smallRate": 3.0, "largeRate": 4.0}
