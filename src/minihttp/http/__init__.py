"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Turns bytes off a connection into HTTPRequest objects, routes them, and
turns HTTPResponse objects back into bytes.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST READER (request.py)                                         │
    │   stream → HTTPRequest(method, path, headers, body)                 │
    │   Raises HTTPParseError subclasses on protocol violations           │
    ├─────────────────────────────────────────────────────────────────────┤
    │ ROUTER (router.py)                                                  │
    │   (method, path) → handler, exact routes before prefix routes       │
    │   405 for methods other than GET/POST, 404 when nothing matches     │
    ├─────────────────────────────────────────────────────────────────────┤
    │ RESPONSE (response.py)                                              │
    │   ResponseBuilder → HTTPResponse → ResponseWriter → sink.sendall()  │
    ├─────────────────────────────────────────────────────────────────────┤
    │ STATUS CODES (status_codes.py)                                      │
    │   HTTPStatus.NOT_FOUND → 404, phrase="Not Found"                    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import (
    HTTPRequest,
    RequestReader,
    parse_request,
    HTTPParseError,
    MalformedRequestLine,
    IncompleteHeaders,
    InvalidContentLength,
    TruncatedBody,
    RequestTooLarge,
)
from .response import (
    HTTPResponse,
    ResponseBuilder,
    ResponseWriter,
    ok,                  # 200 OK
    created,             # 201 Created
    not_found,           # 404 Not Found
    method_not_allowed,  # 405 Method Not Allowed
    internal_error,      # 500 Internal Server Error
    service_unavailable, # 503 Service Unavailable
)
from .router import Router, Route, RouteMatch, RouteType
from .status_codes import HTTPStatus

__all__ = [
    # Request reading
    "HTTPRequest",
    "RequestReader",
    "parse_request",
    "HTTPParseError",
    "MalformedRequestLine",
    "IncompleteHeaders",
    "InvalidContentLength",
    "TruncatedBody",
    "RequestTooLarge",

    # Responses
    "HTTPResponse",
    "ResponseBuilder",
    "ResponseWriter",
    "ok",
    "created",
    "not_found",
    "method_not_allowed",
    "internal_error",
    "service_unavailable",

    # Routing
    "Router",
    "Route",
    "RouteMatch",
    "RouteType",

    # Status codes
    "HTTPStatus",
]
