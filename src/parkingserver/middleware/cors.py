"""
=============================================================================
CORS MIDDLEWARE
=============================================================================

The browser frontend may be served from a different origin than the API
(a dev server on another port, or opened straight from disk), so every
response carries permissive CORS headers:

    Access-Control-Allow-Origin:  *
    Access-Control-Allow-Methods: GET, POST, PUT, DELETE, OPTIONS
    Access-Control-Allow-Headers: Content-Type

and every OPTIONS request (the browser's preflight) is answered with 204
here, before it reaches the router.

=============================================================================
"""

from typing import List, Optional
from dataclasses import dataclass, field

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, no_content


@dataclass
class CORSConfig:
    """CORS settings. The defaults allow any origin."""

    allow_origins: List[str] = field(default_factory=lambda: ["*"])
    allow_methods: List[str] = field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )
    allow_headers: List[str] = field(default_factory=lambda: ["Content-Type"])
    max_age: int = 86400


class CORSMiddleware(Middleware):
    """Adds CORS headers to every response and answers preflight requests."""

    def __init__(self, config: Optional[CORSConfig] = None):
        self.config = config or CORSConfig()

    def _allowed_origin(self, request: HTTPRequest) -> Optional[str]:
        if "*" in self.config.allow_origins:
            return "*"
        origin = request.get_header("Origin")
        if origin and origin in self.config.allow_origins:
            return origin
        return None

    def _apply(self, request: HTTPRequest, response: HTTPResponse) -> HTTPResponse:
        origin = self._allowed_origin(request)
        if origin is None:
            return response

        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = ", ".join(self.config.allow_methods)
        response.headers["Access-Control-Allow-Headers"] = ", ".join(self.config.allow_headers)
        if origin != "*":
            response.headers["Vary"] = "Origin"
        return response

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if request.method == "OPTIONS":
            response = no_content()
            response.headers["Access-Control-Max-Age"] = str(self.config.max_age)
            return self._apply(request, response)

        return self._apply(request, next(request))
