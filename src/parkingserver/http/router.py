"""
=============================================================================
HTTP ROUTER
=============================================================================

Maps (method, path) to a handler.

    Pattern                   Path                     path_params
    ───────────────────────   ──────────────────────   ─────────────────────
    /api/status               /api/status              {}
    /api/vehicle/:plate       /api/vehicle/京A12345    {"plate": "京A12345"}
    /*path                    /css/style.css           {"path": "css/style.css"}

Groups are tried first, then this router's own routes in registration
order. A path that matches some route, but under another method, gets
405 with an Allow header. A path that matches nothing gets 404.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, Any, List
import re

from .request import HTTPRequest
from .response import HTTPResponse, not_found, method_not_allowed


Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass
class Route:
    """A URL pattern bound to a handler."""
    path: str
    method: Optional[str]            # None = any method
    handler: Handler
    name: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)


@dataclass
class RouteMatch:
    """The matched route and the parameters pulled out of the path."""
    route: Route
    params: Dict[str, str]


class Router:
    """
    Request router with :param and *wildcard segments.

        router = Router()

        @router.get("/api/vehicle/:plate")
        def query_vehicle(request):
            plate = request.path_params["plate"]
            ...

        api = router.group("/api")

        @api.get("/status")       # Matches /api/status
        def status(request):
            ...
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.rstrip("/")
        self._routes: List[Route] = []
        self._sub_routers: List[tuple[str, "Router"]] = []

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None,
        name: Optional[str] = None,
        **meta: Any
    ) -> Route:
        full_path = self.prefix + path
        pattern, param_names = self._compile_pattern(full_path)

        route = Route(
            path=full_path,
            method=method.upper() if method else None,
            handler=handler,
            name=name,
            meta=meta,
            _pattern=pattern,
            _param_names=param_names,
        )
        self._routes.append(route)
        return route

    def _compile_pattern(self, path: str) -> tuple[re.Pattern, List[str]]:
        """
        Compile "/api/vehicle/:plate" into ^/api/vehicle/(?P<plate>[^/]+)$.

            :name   one path segment
            *name   the rest of the path, slashes included
        """
        param_names: List[str] = []
        regex_parts = ["^"]

        for segment in path.split("/"):
            if not segment:
                continue

            regex_parts.append("/")

            if segment.startswith(":"):
                param_name = segment[1:]
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>[^/]+)")

            elif segment.startswith("*"):
                param_name = segment[1:] or "wildcard"
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>.*)")
                break

            else:
                regex_parts.append(re.escape(segment))

        if len(regex_parts) == 1:
            regex_parts.append("/")
        regex_parts.append("$")
        return re.compile("".join(regex_parts)), param_names

    @staticmethod
    def _normalize(path: str) -> str:
        return "/" + path.strip("/") if path != "/" else "/"

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        First route matching method and path, or None.

        Groups are tried before this router's own routes, so a catch-all
        such as GET /*path never shadows /api/...
        """
        path = self._normalize(path)

        for prefix, sub_router in self._sub_routers:
            if path.startswith(self.prefix + prefix):
                result = sub_router.match(method, path)
                if result:
                    return result

        for route in self._routes:
            if route.method and route.method != method.upper():
                continue
            match = route._pattern.match(path)
            if match:
                return RouteMatch(route=route, params=match.groupdict())

        return None

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods registered for a path, for the 405 Allow header."""
        path = self._normalize(path)
        methods = set()

        for route in self.routes():
            if route._pattern.match(path):
                if route.method:
                    methods.add(route.method)
                else:
                    return ["DELETE", "GET", "OPTIONS", "POST", "PUT"]

        return sorted(methods)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Dispatch to the matching handler, or answer 404 / 405."""
        match = self.match(request.method, request.path)

        if match:
            request.path_params = match.params
            return match.route.handler(request)

        allowed = self.get_allowed_methods(request.path)
        if allowed:
            return method_not_allowed(allowed)

        return not_found(f"No route matches {request.path}")

    # =========================================================================
    # DECORATORS
    # =========================================================================

    def route(
        self,
        path: str,
        method: Optional[str] = None,
        name: Optional[str] = None,
        **meta: Any
    ) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method, name, **meta)
            return handler
        return decorator

    def get(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "GET", name, **meta)

    def post(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "POST", name, **meta)

    def put(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "PUT", name, **meta)

    def delete(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "DELETE", name, **meta)

    def group(self, prefix: str) -> "Router":
        """A child router whose routes all live under prefix."""
        sub_router = Router(self.prefix + prefix)
        self._sub_routers.append((prefix, sub_router))
        return sub_router

    def routes(self) -> List[Route]:
        """All routes: this router's own first, then each group's."""
        all_routes = list(self._routes)
        for _, sub_router in self._sub_routers:
            all_routes.extend(sub_router.routes())
        return all_routes

    def format_routes(self) -> List[str]:
        """
        One line per route, for the startup banner:

            POST     /api/vehicle
            DELETE   /api/vehicle/:plate
        """
        return [f"{route.method or '*':8} {route.path}" for route in self.routes()]
