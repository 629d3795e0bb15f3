"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every setting the server reads lives in one ServerConfig value. It is
built once at startup and handed to the server, the route table and the
file handler. Nothing reads settings from module globals.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m minihttp --directory /tmp/files                  │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── MINIHTTP_DIRECTORY=/tmp/files python -m minihttp           │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The listen address is fixed at 127.0.0.1:4221. It is still a field so
tests can run a server on a free port.

=============================================================================
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional, Tuple


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 4221

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK
    - host, port, backlog, buffer_size, timeout, max_connections

    REQUEST LIMITS
    - max_line_size, max_header_count, max_body_size

    FILES
    - directory, chunk_size

    COMPRESSION
    - gzip, gzip_paths, gzip_level

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    backlog: int = 128
    """Pending connections the kernel queues before refusing new ones."""

    buffer_size: int = 8192
    """Read buffer of each connection's stream, in bytes."""

    timeout: Optional[float] = 30.0
    """
    Per-connection socket timeout in seconds.
    Bounds every read and write, so a stalled client cannot pin a thread.
    """

    max_connections: int = 256
    """
    Connections handled at the same time. One thread each.
    Beyond this the server answers 503 and closes.
    """

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST LIMITS
    # ─────────────────────────────────────────────────────────────────────

    max_line_size: int = 8192
    max_header_count: int = 100
    max_body_size: int = 10 * 1024 * 1024  # 10 MB

    # ─────────────────────────────────────────────────────────────────────
    # FILES
    # ─────────────────────────────────────────────────────────────────────

    directory: Optional[str] = None
    """
    Serving directory for /files/<name>.
    None: GET /files/... answers 404 and POST answers 500.
    """

    chunk_size: int = 64 * 1024
    """Piece size when streaming a file into the socket."""

    # ─────────────────────────────────────────────────────────────────────
    # COMPRESSION
    # ─────────────────────────────────────────────────────────────────────

    gzip: bool = True
    gzip_paths: Tuple[str, ...] = ("/echo/",)
    """Path prefixes whose responses may be gzip-encoded."""

    gzip_level: int = 6

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"

    log_format: str = "text"
    """Access log format: 'text' (Common Log Format style) or 'json'."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        MINIHTTP_DIRECTORY        Serving directory (default: None)
        MINIHTTP_LOG_LEVEL        Logging level (default: INFO)
        MINIHTTP_TIMEOUT          Socket timeout in seconds (default: 30)
        MINIHTTP_MAX_CONNECTIONS  Concurrent connections (default: 256)
        MINIHTTP_GZIP             "0"/"false"/"no"/"off" disables gzip

        =====================================================================

        Raises:
            ValueError: If a numeric variable does not parse.
        """
        gzip_env = os.getenv("MINIHTTP_GZIP", "1").strip().lower()

        return cls(
            directory=os.getenv("MINIHTTP_DIRECTORY") or None,
            log_level=os.getenv("MINIHTTP_LOG_LEVEL", "INFO").upper(),
            timeout=float(os.getenv("MINIHTTP_TIMEOUT", "30")),
            max_connections=int(os.getenv("MINIHTTP_MAX_CONNECTIONS", "256")),
            gzip=gzip_env not in ("0", "false", "no", "off"),
        )

    @property
    def log_level_value(self) -> int:
        """log_level as a logging module constant, e.g. logging.INFO."""
        return getattr(logging, self.log_level.upper())

    def validate(self) -> None:
        """
        Validate configuration values. Called at startup so a bad value
        fails immediately instead of on the first request.

        Raises:
            ValueError: Describing the first invalid field.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.max_connections < 1:
            raise ValueError("max_connections must be >= 1")

        for name in ("max_line_size", "max_header_count", "max_body_size", "chunk_size"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")

        if not 1 <= self.gzip_level <= 9:
            raise ValueError(f"gzip_level must be 1-9, got {self.gzip_level}")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Unknown log format: {self.log_format}")


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. One dataclass holds every setting
# 2. from_env() for MINIHTTP_* variables, the CLI layers flags on top
# 3. validate() at startup
#
# =============================================================================
