"""
Unit tests for the static file handler.
"""

import pytest

from parkingserver.handlers.static import StaticFileHandler
from parkingserver.http.request import HTTPRequest
from parkingserver.http.response import no_content
from parkingserver.http.router import Router


@pytest.fixture
def site(tmp_path):
    root = tmp_path / "www"
    (root / "css").mkdir(parents=True)
    (root / "empty").mkdir()
    (root / "index.html").write_text("<h1>停车场</h1>", encoding="utf-8")
    (root / "css" / "app.css").write_text("body { margin: 0 }")
    (tmp_path / "secret.txt").write_text("keep out")
    return root


def serve(handler, path, headers=None):
    request = HTTPRequest(method="GET", path="/" + path, headers=headers or {})
    request.path_params = {"path": path}
    return handler.handle(request)


class TestStaticFileHandler:
    """Tests for StaticFileHandler."""

    def test_serves_file(self, site):
        """Content, type and caching headers."""
        response = serve(StaticFileHandler(str(site)), "css/app.css")

        assert response.status == 200
        assert response.body == b"body { margin: 0 }"
        assert response.headers["Content-Type"] == "text/css; charset=utf-8"
        assert response.headers["Cache-Control"] == "public, max-age=3600"
        assert "ETag" in response.headers
        assert response.headers["Last-Modified"].endswith("GMT")

    def test_root_serves_index(self, site):
        """An empty path is the index page."""
        response = serve(StaticFileHandler(str(site)), "")

        assert response.status == 200
        assert response.body.decode("utf-8") == "<h1>停车场</h1>"
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"

    def test_directory_without_index(self, site):
        """No listing for a directory without index.html."""
        assert serve(StaticFileHandler(str(site)), "empty").status == 403

    def test_missing_file(self, site):
        """404 for a file that does not exist."""
        assert serve(StaticFileHandler(str(site)), "nope.js").status == 404

    def test_traversal_blocked(self, site):
        """.. cannot climb out of the root."""
        response = serve(StaticFileHandler(str(site)), "../secret.txt")

        assert response.status == 403
        assert b"keep out" not in response.body

    def test_etag_not_modified(self, site):
        """A matching If-None-Match gets 304 with no body."""
        handler = StaticFileHandler(str(site))
        etag = serve(handler, "css/app.css").headers["ETag"]

        response = serve(handler, "css/app.css", headers={"if-none-match": etag})

        assert response.status == 304
        assert response.body == b""

    def test_missing_root(self, tmp_path):
        """A root that is not a directory is a startup error."""
        with pytest.raises(ValueError):
            StaticFileHandler(str(tmp_path / "absent"))

    def test_catch_all_does_not_shadow_api(self, site):
        """Registered as GET /*path, API routes in a group still win."""
        router = Router()
        router.group("/api").get("/status")(lambda request: no_content())
        router.get("/*path")(StaticFileHandler(str(site)).handle)

        assert router.handle(HTTPRequest(method="GET", path="/api/status")).status == 204
        assert router.handle(HTTPRequest(method="GET", path="/css/app.css")).status == 200

