"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

Networking plumbing underneath the HTTP layer.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Binds 127.0.0.1:4221 and listens                                  │
    │  • Runs the accept loop on the calling thread                       │
    │  • SIGINT / SIGTERM → graceful shutdown                             │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ one Connection per accepted socket
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Wraps the client socket: timeout, buffered reader, sendall()     │
    │  • NEW → READING → PROCESSING → WRITING → CLOSING → CLOSED          │
    │  • One request, then close                                          │
    └─────────────────────────────────────────────────────────────────────┘

The HTTP server gives every Connection its own thread; nothing in this
package knows about HTTP.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
]
