"""
Handlers for the routes that need nothing but the request itself.

    GET /              → root        200, no body, no headers
    GET /echo/*text    → echo        200, body = captured text
    GET /user-agent    → user_agent  200, body = User-Agent header
"""

from ..http.request import HTTPRequest, HEADER_ENCODING
from ..http.response import HTTPResponse, ResponseBuilder, ok


def root(request: HTTPRequest) -> HTTPResponse:
    return ok()


def echo(request: HTTPRequest) -> HTTPResponse:
    """
    Answer with the part of the path after /echo/, byte for byte.

    The path is not URL-decoded, so /echo/a%20b answers "a%20b". Encoding
    back with HEADER_ENCODING gives the exact bytes the client sent.
    """
    text = request.path_params.get("text", "")
    return ResponseBuilder().text(text, encoding=HEADER_ENCODING).build()


def user_agent(request: HTTPRequest) -> HTTPResponse:
    """Answer with the User-Agent header value, empty when absent."""
    return ResponseBuilder().text(request.user_agent, encoding=HEADER_ENCODING).build()
