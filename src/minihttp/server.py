"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the pieces together: listener, request reader, middleware, router and
response writer.

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept thread                                                      │
    │     SocketServer.accept() → Connection                               │
    │     _handle_connection(conn)                                         │
    │       slot free?  ── no ──► Thread("reject-<id>"): 503, close        │
    │       │ yes                                                          │
    │       └── Thread(name="conn-<id>", target=_process_connection)       │
    │                                                                      │
    │   connection thread                                                  │
    │     READING     RequestReader.read(conn.stream)                      │
    │                   parse error / socket error → log, close            │
    │                   EOF before any byte       → close quietly          │
    │     PROCESSING  Logging → Compression → Router → handler             │
    │                   handler exception → logged once, 500               │
    │     WRITING     ResponseWriter.write(conn, response)                 │
    │     CLOSING     shutdown(SHUT_WR), drain, close                      │
    │     CLOSED      slot released                                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONCURRENCY
=============================================================================

One thread per connection, capped by a BoundedSemaphore of
max_connections slots. The accept loop is the only sequential part and
never waits on a client: even a rejected connection gets its own
short-lived thread for the 503 and the bounded drain on close. The
router, handlers and config are read-only after __init__, so connection
threads share them without locks.

=============================================================================
"""

import logging
import os
import threading
from typing import Optional, Tuple

from .config import ServerConfig
from .core import SocketServer, Connection, ConnectionState
from .http import (
    HTTPRequest,
    HTTPResponse,
    HTTPParseError,
    RequestReader,
    ResponseWriter,
    Router,
    internal_error,
    service_unavailable,
)
from .middleware import CompressionMiddleware, LoggingMiddleware, MiddlewarePipeline
from .routes import create_router


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Thread-per-connection HTTP/1.1 server.

    =========================================================================
    USAGE
    =========================================================================

        server = HTTPServer(ServerConfig(directory="/tmp/files"))
        server.run()   # Blocks until Ctrl+C, SIGTERM or shutdown()

    From another thread (tests):

        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        ...
        server.shutdown()

    =========================================================================
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Args:
            config: Server configuration. Defaults to ServerConfig().

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._reader = RequestReader(
            max_line_size=self.config.max_line_size,
            max_header_count=self.config.max_header_count,
            max_body_size=self.config.max_body_size,
        )
        self._writer = ResponseWriter(chunk_size=self.config.chunk_size)
        self._router = create_router(self.config)

        self._middleware = MiddlewarePipeline(
            LoggingMiddleware(log_format=self.config.log_format),
            CompressionMiddleware(
                paths=self.config.gzip_paths,
                level=self.config.gzip_level,
                enabled=self.config.gzip,
            ),
        )
        self._handler = self._middleware.wrap(self._router.handle)

        self._slots = threading.BoundedSemaphore(self.config.max_connections)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def router(self) -> Router:
        return self._router

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the configured one before run()."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, setup_logging: bool = True):
        """
        Start the server (blocking).

        Args:
            setup_logging: Configure the root logger from config.log_level.
                           Pass False when the caller already did.

        Raises:
            OSError: If the listen address cannot be bound.
        """
        if setup_logging:
            self._setup_logging()

        self._check_directory()
        for route in self._router.routes():
            logger.debug(f"Route {route.method} {route.path} → {route.name}")
        logger.info(
            f"Starting HTTP server on {self.config.host}:{self.config.port} "
            f"(max {self.config.max_connections} connections)"
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            logger.info("Server stopped")

    def shutdown(self):
        """Stop accepting connections. Callable from any thread."""
        self._socket_server.shutdown()

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_for_shutdown(timeout)

    def _setup_logging(self):
        level = self.config.log_level_value
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("minihttp").setLevel(level)

    def _check_directory(self):
        """Warn about a missing serving directory. Never fatal."""
        directory = self.config.directory
        if directory is None:
            logger.warning("No serving directory configured, /files/ requests will fail")
        elif not os.path.isdir(directory):
            logger.warning(f"Serving directory does not exist: {directory}")
        else:
            logger.info(f"Serving files from {os.path.abspath(directory)}")

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Run a request through middleware and router.

        Never raises. LoggingMiddleware answers handler exceptions with a
        500. Anything the chain raises outside it is logged here and also
        becomes a 500.
        """
        try:
            return self._handler(request)
        except Exception as e:
            logger.exception(f"Handler error for {request.method} {request.path}: {e}")
            return internal_error()

    def _handle_connection(self, conn: Connection):
        """
        Called on the accept thread for each new connection.

        Takes a slot and starts the connection's thread. When every slot is
        in use a short-lived thread answers 503 instead. Nothing here waits
        on the client, so the accept loop never stalls.
        """
        admitted = self._slots.acquire(blocking=False)
        if admitted:
            target, name = self._process_connection, f"conn-{conn.id}"
        else:
            logger.warning(
                f"[{conn.id}] Connection limit of {self.config.max_connections} "
                f"reached, rejecting {conn.client_ip}"
            )
            target, name = self._reject, f"reject-{conn.id}"

        thread = threading.Thread(target=target, args=(conn,), name=name, daemon=True)
        try:
            thread.start()
        except RuntimeError as e:
            logger.error(f"[{conn.id}] Cannot start connection thread: {e}")
            if admitted:
                self._slots.release()
            conn.close(drain=False)

    def _reject(self, conn: Connection):
        """Send 503 and close. Runs on its own thread."""
        with conn:
            try:
                self._writer.write(conn, service_unavailable())
            except OSError as e:
                logger.debug(f"[{conn.id}] Could not send 503: {e}")

    def _process_connection(self, conn: Connection):
        """Serve one connection (runs in its own thread), then free its slot."""
        try:
            with conn:
                self._serve(conn)
        except Exception as e:
            logger.exception(f"[{conn.id}] Connection error: {e}")
        finally:
            self._slots.release()

    def _serve(self, conn: Connection):
        # ─────────────────────────────────────────────────────────────────
        # READ
        # ─────────────────────────────────────────────────────────────────
        conn.advance(ConnectionState.READING)
        try:
            request = self._reader.read(conn.stream, conn.address)
        except HTTPParseError as e:
            logger.warning(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
            return
        except OSError as e:
            # Includes socket.timeout
            logger.warning(f"[{conn.id}] Read failed from {conn.client_ip}: {e}")
            return

        if request is None:
            logger.debug(f"[{conn.id}] Client closed without sending a request")
            return

        # ─────────────────────────────────────────────────────────────────
        # PROCESS
        # ─────────────────────────────────────────────────────────────────
        conn.advance(ConnectionState.PROCESSING)
        response = self.handle(request)

        # ─────────────────────────────────────────────────────────────────
        # WRITE
        # ─────────────────────────────────────────────────────────────────
        conn.advance(ConnectionState.WRITING)
        try:
            self._writer.write(conn, response)
        except OSError as e:
            logger.warning(f"[{conn.id}] Write failed to {conn.client_ip}: {e}")


def create_app(config: Optional[ServerConfig] = None) -> HTTPServer:
    """
    Factory for a configured server.

        app = create_app(ServerConfig(directory="/tmp/files"))
        app.run()
    """
    return HTTPServer(config)
