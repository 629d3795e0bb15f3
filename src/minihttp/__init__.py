"""
=============================================================================
MINIHTTP - Minimal HTTP/1.1 Server on Raw Sockets
=============================================================================

A small HTTP/1.1 server with a fixed route table, one thread per
connection and one request per connection.

=============================================================================
ROUTES
=============================================================================

    GET  /               200, empty body
    GET  /echo/<s>       200, body <s> (gzip if the client accepts it)
    GET  /user-agent     200, body = User-Agent header
    GET  /files/<name>   200 file contents / 404
    POST /files/<name>   201 after writing the body / 500
    other methods        405
    anything else        404

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    minihttp/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m minihttp)
    ├── server.py            # HTTPServer: ties everything together
    ├── config.py            # ServerConfig dataclass
    ├── routes.py            # The route table
    ├── core/                # Networking
    │   ├── socket_server.py # Listener and accept loop
    │   └── connection.py    # Per-client socket wrapper
    ├── http/                # Protocol
    │   ├── request.py       # Request reader
    │   ├── response.py      # Response builder and writer
    │   ├── router.py        # (method, path) → handler
    │   └── status_codes.py  # HTTPStatus enum
    ├── middleware/
    │   ├── base.py          # Middleware ABC, pipeline
    │   ├── logging.py       # Access log
    │   └── compression.py   # gzip
    └── handlers/
        ├── basic.py         # root, echo, user-agent
        └── files.py         # /files/ GET and POST

=============================================================================
QUICK START
=============================================================================

    from minihttp import HTTPServer, ServerConfig

    server = HTTPServer(ServerConfig(directory="/tmp/files"))
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer
from .config import ServerConfig

__all__ = ["HTTPServer", "ServerConfig", "__version__"]
