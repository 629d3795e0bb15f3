"""
=============================================================================
TCP SOCKET SERVER
=============================================================================

The listener: owns the listening socket and runs the accept loop. Every
accepted client socket is wrapped in a Connection and handed to a
callback. What happens to the connection after that (a handler thread,
the admission cap) is the HTTP server's business.

=============================================================================
SOCKET LIFECYCLE
=============================================================================

    socket() → setsockopt() → bind() → listen() → accept() ... → close()

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   start(callback)                                                    │
    │     ├── _create_socket()   SO_REUSEADDR, TCP_NODELAY, 1s timeout     │
    │     ├── bind(host, port)                                             │
    │     ├── listen(backlog)                                              │
    │     ├── _setup_signals()   main thread only                          │
    │     └── _accept_loop()     blocks until shutdown()                   │
    │            while running:                                            │
    │                accept() ─ timeout? ─► check running flag, loop       │
    │                Connection(...)                                       │
    │                callback(conn)                                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:
    Lets a restarted server bind while the old socket sits in TIME_WAIT.

TCP_NODELAY:
    Disables Nagle's algorithm so small responses leave immediately.

Accept timeout (1 second):
    accept() would otherwise block forever. With a timeout the loop wakes
    up once a second to notice that shutdown() was called.

=============================================================================
SIGNALS
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (kill, docker stop) call shutdown(). Python
only allows installing signal handlers from the main thread, so a server
started from any other thread (tests, embedding) skips this step.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP listener.

    Usage:
        def handle_connection(conn: Connection):
            ...

        server = SocketServer(config)
        server.start(handle_connection)  # Blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        """
        Args:
            config: Server configuration (host, port, backlog, timeouts).

        The socket is created lazily in start().
        """
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._bound_address: Optional[Tuple[str, int]] = None

        # Set when the accept loop has exited
        self._shutdown_event = threading.Event()

        # Handlers replaced by _setup_signals(), restored on exit
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The (host, port) the server is bound to.

        After start() this is the real bound address, so port 0 in the
        config reports the port the OS picked.
        """
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        """Create the listening socket with its options set."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # Poll interval for the running flag
        sock.settimeout(1.0)

        return sock

    def _setup_signals(self):
        """Route SIGTERM and SIGINT to shutdown(). Main thread only."""
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and accept connections until shutdown().

        Args:
            connection_handler: Called on the accept thread with every new
                                Connection. It must return quickly; the
                                HTTP server spawns a thread and returns.

        Raises:
            OSError: If the address cannot be bound.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._bound_address = self._socket.getsockname()[:2]

        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()

        host, port = self._bound_address
        logger.info(f"Server listening on {host}:{port}")

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections while running.

        ┌─────────────────────────────────────────────────────────────────┐
        │   while self._running:                                           │
        │       accept()            blocks up to 1 second                  │
        │       Connection(...)     per-socket timeout, buffered reader    │
        │       connection_handler(conn)                                   │
        └─────────────────────────────────────────────────────────────────┘
        """
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
            )

            try:
                connection_handler(conn)
            except Exception:
                logger.exception(f"[{conn.id}] Connection handler failed")
                conn.close(drain=False)

    def shutdown(self):
        """
        Stop the accept loop. Callable from any thread or a signal handler,
        and safe to call more than once.
        """
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._shutdown_event.set()
        logger.info("Socket server stopped")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the accept loop has exited.

        Returns:
            True if the server stopped, False on timeout.
        """
        return self._shutdown_event.wait(timeout)
