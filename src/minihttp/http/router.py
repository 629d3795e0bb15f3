"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to a handler function.

Two kinds of route pattern are supported:
- Static paths: "/", "/user-agent"
- Prefix paths: "/echo/*text", "/files/*name"

=============================================================================
ROUTING FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ROUTING FLOW                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   GET /echo/abc                                                      │
    │        │                                                             │
    │        ▼                                                             │
    │   Method supported?  ── no ──► 405 Method Not Allowed                │
    │        │ yes                                                         │
    │        ▼                                                             │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │ 1. STATIC routes (exact string compare)                      │   │
    │   │      GET  /            → root                                │   │
    │   │      GET  /user-agent  → user_agent                          │   │
    │   │ 2. PREFIX routes (startswith, registration order)            │   │
    │   │      GET  /echo/*text  → echo          ← MATCH               │   │
    │   │      GET  /files/*name → file_get                            │   │
    │   │      POST /files/*name → file_post                           │   │
    │   └─────────────────────────────────────────────────────────────┘   │
    │        │                                                             │
    │        ▼                                                             │
    │   echo(request)    request.path_params == {"text": "abc"}            │
    │                                                                      │
    │   Nothing matched → 404 Not Found                                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ROUTE PATTERNS
=============================================================================

1. STATIC: exact string match. No trailing-slash normalization.

   Pattern: /user-agent
   Matches: /user-agent
   Doesn't match: /user-agent/, /user-agent?x=1

2. PREFIX (*param): everything after the prefix, slashes included, verbatim.

   Pattern: /files/*name
   Matches: /files/a.txt     → {"name": "a.txt"}
            /files/dir/b.bin → {"name": "dir/b.bin"}
            /files/          → {"name": ""}
   The *param segment must come last.

Paths are never URL-decoded here: /echo/a%20b captures "a%20b".

=============================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

from .request import HTTPRequest
from .response import HTTPResponse, method_not_allowed, not_found


logger = logging.getLogger(__name__)


# Handler: takes a request, returns a response
Handler = Callable[[HTTPRequest], HTTPResponse]

# Anything else is answered with 405 before matching
SUPPORTED_METHODS: Tuple[str, ...] = ("GET", "POST")


class RouteType(Enum):
    """How a route's path is compared against the request path."""
    STATIC = "static"   # /user-agent - exact match
    PREFIX = "prefix"   # /echo/*text - startswith, remainder captured


@dataclass
class Route:
    """
    A registered route.

        Route(
            path="/files/*name",     # pattern as registered
            method="GET",
            handler=file_handler.get,
            kind=RouteType.PREFIX,
            prefix="/files/",        # literal part compared with startswith
            param_name="name",       # key for the captured remainder
        )
    """

    path: str
    method: str
    handler: Handler
    kind: RouteType
    name: Optional[str] = None
    prefix: str = field(default="", repr=False)
    param_name: Optional[str] = field(default=None, repr=False)

    def match_path(self, path: str) -> Optional[Dict[str, str]]:
        """Captured params if `path` matches this route, else None."""
        if self.kind is RouteType.STATIC:
            return {} if path == self.path else None

        if path.startswith(self.prefix):
            return {self.param_name: path[len(self.prefix):]}
        return None


@dataclass
class RouteMatch:
    """
    Result of a successful match.

    Example:
        Pattern: /echo/*text
        Path:    /echo/abc
        Result:  RouteMatch(route=<Route>, params={"text": "abc"})
    """
    route: Route
    params: Dict[str, str]


class Router:
    """
    HTTP request router.

    ==========================================================================
    REGISTRATION
    ==========================================================================

        router = Router()

        router.add_route("/", root)
        router.add_route("/echo/*text", echo)
        router.add_route("/files/*name", files.post, method="POST")

    ==========================================================================
    MATCH ORDER
    ==========================================================================

    Static routes win over prefix routes regardless of registration order,
    so "/files" can never be shadowed by a "/f*rest" prefix. Among prefix
    routes the first registered wins.

    The table is built once at startup and only read afterwards, so sharing
    one Router between connection threads needs no locking.

    ==========================================================================
    """

    def __init__(self, supported_methods: Sequence[str] = SUPPORTED_METHODS):
        self.supported_methods = tuple(supported_methods)
        self._static: List[Route] = []
        self._prefix: List[Route] = []

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: str = "GET",
        name: Optional[str] = None,
    ) -> Route:
        """
        Register a route.

        Args:
            path: "/literal" or "/prefix/*param"
            handler: Callable taking a request and returning a response
            method: HTTP method this route answers
            name: Optional label, used in logs

        Raises:
            ValueError: If the method is not supported or "*" is misplaced.
        """
        method = method.upper()
        if method not in self.supported_methods:
            raise ValueError(f"Unsupported method for route {path}: {method}")

        kind, prefix, param_name = self._compile_pattern(path)
        route = Route(
            path=path,
            method=method,
            handler=handler,
            kind=kind,
            name=name or getattr(handler, "__name__", None),
            prefix=prefix,
            param_name=param_name,
        )

        if kind is RouteType.STATIC:
            self._static.append(route)
        else:
            self._prefix.append(route)

        logger.debug(f"Route registered: {method} {path} ({kind.value})")
        return route

    def _compile_pattern(self, path: str) -> Tuple[RouteType, str, Optional[str]]:
        """
        Split a pattern into its kind, literal prefix and parameter name.

            "/user-agent"  → (STATIC, "/user-agent", None)
            "/echo/*text"  → (PREFIX, "/echo/", "text")
        """
        star = path.find("*")
        if star == -1:
            return RouteType.STATIC, path, None

        prefix, param_name = path[:star], path[star + 1:]
        if "/" in param_name:
            raise ValueError(f"Wildcard must be the last segment: {path}")

        return RouteType.PREFIX, prefix, param_name or "wildcard"

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        Find the route for a method and path.

        Returns:
            RouteMatch, or None when nothing matches (not found).
        """
        for table in (self._static, self._prefix):
            for route in table:
                if route.method != method:
                    continue
                params = route.match_path(path)
                if params is not None:
                    return RouteMatch(route=route, params=params)

        return None

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Route a request to its handler.

            1. Unsupported method → 405, handler never runs
            2. Match             → handler(request copy with path_params)
            3. No match          → 404
        """
        if request.method not in self.supported_methods:
            return method_not_allowed(list(self.supported_methods))

        match = self.match(request.method, request.path)
        if match is None:
            return not_found()

        return match.route.handler(request.with_params(match.params))

    def routes(self) -> List[Route]:
        """All routes in match order."""
        return self._static + self._prefix
