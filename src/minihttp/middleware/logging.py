"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One log line per handled request, on the "minihttp.access" logger.

    127.0.0.1 - - [18/Oct/2026:10:15:32 +0000] "GET /echo/abc" 200 3 0.41ms

or, with log_format="json":

    {"request_id": "3f2a9c1e", "method": "GET", "path": "/echo/abc", ...}

The access logger is separate from the module loggers, so it can be
routed or silenced on its own:

    logging.getLogger("minihttp.access").setLevel(logging.WARNING)

A handler exception is logged here once, with its traceback, on this
module's logger. The client gets an empty 500 and the access line records
it. Requests that never parse (connection-fatal errors) never reach the
middleware chain. The server logs those itself.

=============================================================================
"""

import time
import json
import uuid
import logging
from dataclasses import dataclass

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, internal_error


logger = logging.getLogger("minihttp.access")
error_logger = logging.getLogger(__name__)


@dataclass
class RequestLog:
    """
    Structured access log entry.

    request_id:     Short random id to correlate lines about one request
    method:         HTTP method
    path:           Raw request path
    client_ip:      Peer IP address
    user_agent:     User-Agent header, "-" when absent
    status_code:    Response status
    content_length: Response body size in bytes
    duration_ms:    Time spent in the handler chain
    timestamp:      Local time in Common Log Format
    """

    request_id: str
    method: str
    path: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
            "status_code": self.status_code,
            "content_length": self.content_length,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        """Common Log Format with the duration appended."""
        return (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Put it outermost so timing covers the whole chain and the logged status
    and size are the ones that reach the client:

        MiddlewarePipeline(LoggingMiddleware(log_format="json"), CompressionMiddleware())

    An exception from the inner chain is logged once, with its traceback,
    and answered with an empty 500. That 500 gets its access line like any
    other response. Otherwise responses are never modified.
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        """
        Args:
            log_format: "text" or "json".
            log_level: Level for ordinary access lines. 5xx responses are
                       always logged at WARNING or above.
        """
        self.log_format = log_format
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = uuid.uuid4().hex[:8]
        start_time = time.time()

        try:
            response = next(request)
        except Exception as e:
            error_logger.exception(
                f"[{request_id}] Handler error for {request.method} {request.path}: {e}"
            )
            response = internal_error()

        duration_ms = (time.time() - start_time) * 1000

        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=response.content_length,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        level = self.log_level
        if response.status >= 500:
            level = max(level, logging.WARNING)

        if self.log_format == "json":
            logger.log(level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(level, log_entry.to_text())

        return response
