"""
=============================================================================
HTTP PROTOCOL PACKAGE
=============================================================================

The HTTP/1.1 layer the parking API is served over:

    request.py       RequestParser turns the request head into HTTPRequest
    response.py      HTTPResponse, ResponseBuilder and the JSON envelope
    router.py        method + path pattern → handler
    status_codes.py  HTTPStatus
    mime_types.py    Content-Type for static files

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseBuilder,
    json_response,
    error_response,
    no_content,
    bad_request,
    forbidden,
    not_found,
    method_not_allowed,
    internal_error,
    service_unavailable,
)
from .router import Router, Route
from .status_codes import HTTPStatus
from .mime_types import get_mime_type, get_content_type

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "json_response",
    "error_response",
    "no_content",
    "bad_request",
    "forbidden",
    "not_found",
    "method_not_allowed",
    "internal_error",
    "service_unavailable",

    # Routing
    "Router",
    "Route",

    # Status codes
    "HTTPStatus",

    # MIME types
    "get_mime_type",
    "get_content_type",
]
