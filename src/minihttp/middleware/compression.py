"""
=============================================================================
GZIP COMPRESSION MIDDLEWARE
=============================================================================

Gzip-encodes responses when the client asks for it.

=============================================================================
CONTENT NEGOTIATION
=============================================================================

    Client                                      Server
      │  GET /echo/abc HTTP/1.1                   │
      │  Accept-Encoding: deflate, gzip           │
      │ ─────────────────────────────────────────►│
      │                                           │  gzip.compress(b"abc")
      │  HTTP/1.1 200 OK                          │
      │  Content-Type: text/plain                 │
      │  Content-Length: 23                       │
      │  Content-Encoding: gzip                   │
      │  Vary: Accept-Encoding                    │
      │ ◄─────────────────────────────────────────│

Accept-Encoding is a comma-separated list of codings, each optionally
followed by parameters:

    "gzip"                    → gzip accepted
    "deflate, GZIP;q=0.5"     → gzip accepted (case-insensitive)
    "gzip;q=0"                → gzip explicitly refused
    "invalid-encoding"        → not accepted, response left alone

Only the token itself counts. "x-gzip-ish" does not mean gzip.

=============================================================================
WHAT GETS COMPRESSED
=============================================================================

    ✓ path starts with one of the configured prefixes (default "/echo/")
    ✓ in-memory body (streamed files are left alone)
    ✓ compressible Content-Type (text/plain, ...)
    ✓ no Content-Encoding yet

Small bodies are compressed too, even when gzip makes them bigger: a
client that asked for gzip gets gzip.

=============================================================================
"""

import gzip
import logging
from typing import Iterable, Optional, Set

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


def accepts_gzip(accept_encoding: str) -> bool:
    """
    True if an Accept-Encoding value lists gzip with a non-zero q.

        >>> accepts_gzip("deflate, gzip")
        True
        >>> accepts_gzip("gzip;q=0")
        False
    """
    for item in accept_encoding.split(","):
        coding, _, params = item.partition(";")
        if coding.strip().lower() != "gzip":
            continue

        # ─────────────────────────────────────────────────────────────────
        # q=0 means "not acceptable"; any other value (or none) is a yes
        # ─────────────────────────────────────────────────────────────────
        for param in params.split(";"):
            key, _, value = param.partition("=")
            if key.strip().lower() == "q":
                try:
                    return float(value.strip()) > 0
                except ValueError:
                    return False
        return True

    return False


class CompressionMiddleware(Middleware):
    """
    Response compression middleware.

    =========================================================================
    HOW IT WORKS
    =========================================================================

    1. Skip unless the path is eligible and the client accepts gzip
    2. Call the next handler to get the response
    3. Skip streamed, already-encoded or non-text responses
    4. Compress, then set Content-Encoding, Content-Length and Vary

    Pass it last so it sees the handler's response before anything else
    does, and the logging middleware outside it logs the compressed size.

    =========================================================================
    USAGE
    =========================================================================

        CompressionMiddleware()                   # /echo/ only
        CompressionMiddleware(paths=["/"])        # everything
        CompressionMiddleware(enabled=False)      # pass-through

    =========================================================================
    """

    COMPRESSIBLE_TYPES: Set[str] = {
        "text/plain",
        "text/html",
        "text/css",
        "text/xml",
        "application/json",
        "application/xml",
    }

    def __init__(
        self,
        paths: Iterable[str] = ("/echo/",),
        level: int = 6,
        enabled: bool = True,
        compressible_types: Optional[Set[str]] = None,
    ):
        """
        Args:
            paths: Path prefixes whose responses may be compressed.
            level: gzip compression level (1 fastest, 9 smallest).
            enabled: False turns the middleware into a pass-through.
            compressible_types: Content types to compress.
        """
        self.paths = tuple(paths)
        self.level = level
        self.enabled = enabled
        self.compressible_types = compressible_types or self.COMPRESSIBLE_TYPES

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if not (self.enabled and self._path_eligible(request.path)):
            return next(request)

        wants_gzip = accepts_gzip(request.accept_encoding)

        response = next(request)

        if not wants_gzip or not self._should_compress(response):
            return response

        original_size = len(response.body)
        # mtime=0 keeps the output identical for identical input
        response.body = gzip.compress(response.body, compresslevel=self.level, mtime=0)

        vary = response.headers.get("Vary", "")
        if "Accept-Encoding" not in vary:
            vary = f"{vary}, Accept-Encoding".lstrip(", ")

        (response
            .set_header("Content-Encoding", "gzip")
            .set_header("Content-Length", str(len(response.body)))
            .set_header("Vary", vary))

        logger.debug(
            f"Compressed {request.path}: {original_size} → {len(response.body)} bytes"
        )
        return response

    def _path_eligible(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.paths)

    def _should_compress(self, response: HTTPResponse) -> bool:
        """
        Decide whether a response body can be gzip-encoded.

        "text/plain; charset=utf-8" counts as "text/plain".
        """
        if response.body_stream is not None:
            return False

        if "Content-Encoding" in response.headers:
            return False

        content_type = response.headers.get("Content-Type", "")
        base_type = content_type.split(";")[0].strip().lower()
        return base_type in self.compressible_types


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. accepts_gzip() parses Accept-Encoding tokens, honouring q=0
# 2. Only configured path prefixes are eligible
# 3. Content-Length is recomputed on the compressed bytes
# 4. Vary: Accept-Encoding marks the response as negotiated
#
# =============================================================================
