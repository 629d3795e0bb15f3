"""
=============================================================================
MIDDLEWARE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ base.py         Middleware ABC, MiddlewarePipeline                  │
    │ logging.py      LoggingMiddleware: one access line per request      │
    │ compression.py  CompressionMiddleware: gzip for eligible paths      │
    └─────────────────────────────────────────────────────────────────────┘

The server builds LoggingMiddleware → CompressionMiddleware → router.

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware, RequestLog
from .compression import CompressionMiddleware, accepts_gzip

__all__ = [
    # Base classes
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",

    # Built-in middleware
    "LoggingMiddleware",
    "RequestLog",
    "CompressionMiddleware",
    "accepts_gzip",
]
