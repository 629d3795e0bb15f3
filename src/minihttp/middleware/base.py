"""
=============================================================================
MIDDLEWARE BASE CLASSES
=============================================================================

Middleware wraps the router so cross-cutting work (access logging,
compression) stays out of the route handlers.

=============================================================================
CHAIN OF RESPONSIBILITY
=============================================================================

Each middleware gets the request and a `next` callable. It may work on
the request, must call next(request) to continue, and may work on the
response on the way out:

    Request ──► Logging ──► Compression ──► router.handle ──┐
                                                             │
    Response ◄── Logging ◄── Compression ◄───────────────────┘

=============================================================================
"""

from abc import ABC, abstractmethod
from functools import partial
from typing import Callable, Tuple
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The next middleware, or the router at the end of the chain
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

    =========================================================================
    THE MIDDLEWARE CONTRACT
    =========================================================================

        class MyMiddleware(Middleware):
            def __call__(self, request, next):
                # before the handler
                response = next(request)
                # after the handler
                return response

    Exceptions from next() propagate. LoggingMiddleware turns them into a 500.

    =========================================================================
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming HTTP request
            next: The rest of the chain

        Returns:
            The response from next(), possibly modified
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    An ordered, fixed stack of middleware around one final handler.

    =========================================================================
    NESTING
    =========================================================================

        MiddlewarePipeline(LoggingMiddleware(), CompressionMiddleware())

            ┌─────────────────────────────────────────────────────────┐
            │  LoggingMiddleware                                      │
            │  ┌───────────────────────────────────────────────────┐  │
            │  │  CompressionMiddleware                            │  │
            │  │  ┌─────────────────────────────────────────────┐  │  │
            │  │  │         FINAL HANDLER (router.handle)       │  │  │
            │  │  └─────────────────────────────────────────────┘  │  │
            │  └───────────────────────────────────────────────────┘  │
            └─────────────────────────────────────────────────────────┘

    The first argument is the outermost layer. Logging sits outside
    compression, so it sees the final status and the bytes actually sent.

    =========================================================================
    """

    def __init__(self, *middleware: Middleware):
        self._stack: Tuple[Middleware, ...] = middleware

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Bind every layer to the one inside it, innermost first.

        Each layer becomes partial(layer, next=<inner chain>), so calling
        the result with a request runs the whole stack.
        """
        chain = handler
        for middleware in reversed(self._stack):
            chain = partial(middleware, next=chain)

        if self._stack:
            logger.debug(
                "Middleware chain: "
                + " → ".join(m.name for m in self._stack)
                + " → handler"
            )
        return chain
