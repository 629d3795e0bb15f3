"""
=============================================================================
HANDLERS MODULE
=============================================================================

Route handlers. Each takes an HTTPRequest (with path_params filled in by
the router) and returns an HTTPResponse.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Handler              │ Route              │ Result                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │ root                 │ GET  /             │ 200, empty              │
    │ echo                 │ GET  /echo/*text   │ 200, text/plain         │
    │ user_agent           │ GET  /user-agent   │ 200, text/plain         │
    │ FileHandler.get      │ GET  /files/*name  │ 200 octet-stream / 404  │
    │ FileHandler.post     │ POST /files/*name  │ 201 / 500               │
    └─────────────────────────────────────────────────────────────────────┘

The plain functions are stateless. FileHandler is a class because it
carries the serving directory it was configured with.

=============================================================================
"""

from .basic import root, echo, user_agent
from .files import FileHandler

__all__ = [
    "root",
    "echo",
    "user_agent",
    "FileHandler",
]
