"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket for the lifetime of a single
request/response exchange.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

TCP does not preserve message boundaries. A request sent in one write can
arrive as several recv() chunks, and two writes can arrive as one:

    Client sends:   "GET /echo/abc HTTP/1.1\r\n\r\n"
    Server may get: "GET /ec" + "ho/abc HTTP/1.1\r\n" + "\r\n"

Rather than accumulating recv() chunks by hand, the connection exposes a
buffered binary reader (socket.makefile("rb")). The request reader calls
readline() and read(n) on it and the buffering takes care of the chunk
boundaries.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──► CLOSING ──► CLOSED
              │              │                        ▲
              │ parse error  │                        │
              └──────────────┴── socket error ────────┘

States only move forward. One request per connection: after WRITING the
connection always closes. There is no keep-alive.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import BinaryIO, Optional, Tuple
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """
    Connection lifecycle states, in the order a connection passes through
    them. Used for logging and to catch out-of-order transitions.
    """
    NEW = "new"                # Just accepted
    READING = "reading"        # Reading the request off the socket
    PROCESSING = "processing"  # Routing and running the handler
    WRITING = "writing"        # Sending the response
    CLOSING = "closing"        # TCP shutdown sequence in progress
    CLOSED = "closed"          # Socket released


_STATE_ORDER = {state: index for index, state in enumerate(ConnectionState)}

# Upper bounds for reading leftover client bytes during close()
DRAIN_TIMEOUT = 0.5
DRAIN_LIMIT = 64 * 1024


@dataclass
class Connection:
    """
    A client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. BUFFERED READING                                                 │
    │     └── `stream` is a buffered reader over the socket               │
    │                                                                      │
    │  2. TIMEOUT                                                          │
    │     └── One socket timeout bounds every read and write              │
    │     └── A client that stalls mid-request times out, not the server  │
    │                                                                      │
    │  3. STATE TRACKING                                                   │
    │     └── advance() moves forward through ConnectionState            │
    │                                                                      │
    │  4. GRACEFUL CLOSE                                                   │
    │     └── shutdown(SHUT_WR), drain, close; never raises              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier used in logs and the handler thread name.
        state: Current connection state.
        created_at: Timestamp when the connection was accepted.
        bytes_sent: Bytes written through sendall().
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    bytes_sent: int = 0

    # Configuration (passed from ServerConfig)
    buffer_size: int = 8192
    timeout: Optional[float] = 30.0

    _reader: Optional[BinaryIO] = field(default=None, repr=False)

    def __post_init__(self):
        self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    @property
    def stream(self) -> BinaryIO:
        """
        Buffered binary reader over the socket, created on first use.

        Reads honour the socket timeout and raise socket.timeout (an
        OSError) when it expires.
        """
        if self._reader is None:
            self._reader = self.socket.makefile("rb", buffering=self.buffer_size)
        return self._reader

    # =========================================================================
    # STATE
    # =========================================================================

    def advance(self, state: ConnectionState) -> None:
        """
        Move to a later state.

        Raises:
            RuntimeError: If `state` comes before the current one.
        """
        if _STATE_ORDER[state] < _STATE_ORDER[self.state]:
            raise RuntimeError(
                f"[{self.id}] Invalid transition {self.state.value} → {state.value}"
            )
        self.state = state

    # =========================================================================
    # WRITING
    # =========================================================================

    def sendall(self, data: bytes) -> None:
        """
        Send every byte of `data`.

        Lets the connection act as the ResponseWriter's sink.

        Raises:
            OSError: On a broken pipe, reset or timeout.
        """
        self.socket.sendall(data)
        self.bytes_sent += len(data)

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self, drain: bool = True):
        """
        Close the connection gracefully. Safe to call more than once.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    TCP Close Sequence                            │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   Server                              Client                     │
        │      │   FIN ──────────────────────────► │  (shutdown SHUT_WR)  │
        │      │ ◄───────────────────────── ACK   │                       │
        │      │ ◄───────────────────────── FIN   │  (client closes)      │
        │      │   ACK ──────────────────────────► │                       │
        │   (socket closed)                  (socket closed)               │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Draining before close() keeps the kernel from answering unread
        client bytes with a RST, which could cut off the response.

        Args:
            drain: Read and discard what the client still sends, for at
                   most DRAIN_TIMEOUT seconds and DRAIN_LIMIT bytes. The
                   accept thread passes False so it never waits on a client.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        # ─────────────────────────────────────────────────────────────────
        # STEP 1: Stop sending (sends FIN)
        # ─────────────────────────────────────────────────────────────────
        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        # ─────────────────────────────────────────────────────────────────
        # STEP 2: Drain whatever the client still sends
        # ─────────────────────────────────────────────────────────────────
        # Bounded by a total deadline and a byte budget, so a client that
        # keeps trickling bytes cannot hold the close open.
        if drain:
            self._drain()

        # ─────────────────────────────────────────────────────────────────
        # STEP 3: Release the reader and the file descriptor
        # ─────────────────────────────────────────────────────────────────
        # The socket is only really closed once the makefile() reader is.
        if self._reader is not None:
            try:
                self._reader.close()
            except OSError:
                pass
            self._reader = None

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Connection closed after {self.age:.3f}s, "
            f"{self.bytes_sent} bytes sent"
        )

    def _drain(self):
        deadline = time.monotonic() + DRAIN_TIMEOUT
        drained = 0
        try:
            while drained < DRAIN_LIMIT:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                data = self.socket.recv(4096)
                if not data:
                    break
                drained += len(data)
        except OSError:
            pass  # socket.timeout is an OSError

        if drained:
            logger.debug(f"[{self.id}] Discarded {drained} unread bytes")

    def __enter__(self):
        """
        Context manager entry:

            with conn:
                request = reader.read(conn.stream)
                writer.write(conn, response)
            # Connection closed here
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
