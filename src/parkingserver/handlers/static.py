"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves the browser frontend (index.html, CSS, JS) from a directory.

    GET /              → <root>/index.html
    GET /css/app.css   → <root>/css/app.css
    GET /../etc/passwd → 403 (never leaves <root>)

Registered as a GET catch-all AFTER the API routes, so /api/... and
/health... always win:

    router.get("/*path", static.handle)

=============================================================================
"""

import logging
from pathlib import Path
from datetime import datetime, timezone

from ..http.request import HTTPRequest
from ..http.response import (
    HTTPResponse, ResponseBuilder, HTTPStatus,
    format_http_date, not_found, forbidden, internal_error,
)
from ..http.mime_types import get_content_type


logger = logging.getLogger(__name__)


class StaticFileHandler:
    """
    Handler for serving static files.

    =========================================================================
    FLOW
    =========================================================================

        Request: GET /js/api.js

        1. Take the file path from the wildcard parameter
        2. Resolve it against root_dir (follows .. and symlinks)
        3. Security check: is the resolved path still inside root_dir?
        4. Directory → its index.html, or 403
        5. File → check ETag, serve content with caching headers

    =========================================================================
    """

    def __init__(
        self,
        root_dir: str,
        index_file: str = "index.html",
        cache_max_age: int = 3600,
    ):
        """
        Args:
            root_dir: Directory to serve. Every served file must be inside it.
            index_file: File served for directory requests, including "/".
            cache_max_age: Cache-Control max-age in seconds.

        Raises:
            ValueError: If root_dir is not a directory.
        """
        self.root_dir = Path(root_dir).resolve()
        self.index_file = index_file
        self.cache_max_age = cache_max_age

        if not self.root_dir.is_dir():
            raise ValueError(f"Static root directory does not exist: {root_dir}")

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        file_path = request.path_params.get("path", "").lstrip("/")

        full_path = (self.root_dir / file_path).resolve()

        # ─────────────────────────────────────────────────────────────────
        # PATH TRAVERSAL CHECK
        # ─────────────────────────────────────────────────────────────────
        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt: {file_path}")
            return forbidden("Access denied")

        if full_path.is_dir():
            index_path = full_path / self.index_file
            if not index_path.is_file():
                return forbidden("Directory listing not allowed")
            full_path = index_path

        if not full_path.is_file():
            return not_found(f"File not found: {file_path or '/'}")

        return self._serve_file(full_path, request)

    def _serve_file(self, path: Path, request: HTTPRequest) -> HTTPResponse:
        """
        Serve one file. ETag is mtime-size; a matching If-None-Match gets
        304 with no body.
        """
        try:
            stat = path.stat()
            etag = f'"{int(stat.st_mtime)}-{stat.st_size}"'

            if request.get_header("if-none-match") == etag:
                return (ResponseBuilder()
                    .status(HTTPStatus.NOT_MODIFIED)
                    .header("ETag", etag)
                    .build())

            content = path.read_bytes()
            mtime = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)

            return (ResponseBuilder()
                .status(HTTPStatus.OK)
                .content_type(get_content_type(path))
                .header("ETag", etag)
                .header("Last-Modified", format_http_date(mtime))
                .cache(self.cache_max_age)
                .body(content)
                .build())

        except PermissionError:
            return forbidden("Permission denied")
        except OSError as e:
            logger.error(f"Error serving file {path}: {e}")
            return internal_error("Failed to read file")
