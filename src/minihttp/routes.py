"""
The route table.

Built once at startup from the configuration and never changed after:

    | Method | Pattern        | Handler          |
    |--------|----------------|------------------|
    | GET    | /              | root             |
    | GET    | /user-agent    | user_agent       |
    | GET    | /echo/*text    | echo             |
    | GET    | /files/*name   | FileHandler.get  |
    | POST   | /files/*name   | FileHandler.post |
"""

from .config import ServerConfig
from .handlers import FileHandler, echo, root, user_agent
from .http.router import Router


def create_router(config: ServerConfig) -> Router:
    """Build the router for a server running with `config`."""
    router = Router()

    router.add_route("/", root, method="GET", name="root")
    router.add_route("/user-agent", user_agent, method="GET", name="user_agent")
    router.add_route("/echo/*text", echo, method="GET", name="echo")

    files = FileHandler(config.directory)
    router.add_route("/files/*name", files.get, method="GET", name="file_get")
    router.add_route("/files/*name", files.post, method="POST", name="file_post")

    return router
