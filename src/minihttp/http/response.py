"""
=============================================================================
HTTP RESPONSE BUILDER AND WRITER
=============================================================================

Builds HTTP/1.1 responses and writes them onto a connection.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP RESPONSE STRUCTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   HTTP/1.1 200 OK\r\n                     ← STATUS LINE             │
    │   Content-Type: text/plain\r\n            ← HEADERS                 │
    │   Content-Length: 3\r\n                                             │
    │   \r\n                                    ← BLANK LINE              │
    │   abc                                     ← BODY                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The writer adds NOTHING on its own: no Date, no Server, no Connection
header. What the handler put in the response is exactly what goes on the
wire, so a GET /echo/abc is answered with the bytes above and nothing
else.

=============================================================================
CONTENT-LENGTH RULES
=============================================================================

    Body non-empty (in memory)   → builder sets Content-Length = len(body)
    Body streamed from a file    → caller passes the length up front
    Body empty                   → no Content-Length at all (GET / case)
    Explicit header              → left alone (compression rewrites it)

There is no chunked encoding in either direction, and the connection is
closed after every response, so an empty-bodied response without a
Content-Length is still unambiguous.

=============================================================================
STREAMED BODIES
=============================================================================

File downloads are not read into memory. The handler opens the file and
hands the open stream to the response; the writer copies it to the socket
in chunk_size pieces and closes it, success or not.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Iterator, List, Optional, Union

from .request import HEADER_ENCODING
from .status_codes import HTTPStatus


DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass
class HTTPResponse:
    """
    An HTTP response waiting to be written.

    Use ResponseBuilder (or the helpers at the bottom of this module) rather
    than filling the fields by hand, so Content-Length stays consistent.

    Attributes:
        status:      HTTPStatus member
        headers:     Header name → value, emitted in insertion order
        body:        In-memory body bytes
        body_stream: Open binary file to stream instead of `body`
        version:     Protocol version for the status line
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    body_stream: Optional[BinaryIO] = field(default=None, repr=False)
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 404 Not Found"."""
        return f"{self.version} {self.status.value} {self.status.phrase}"

    @property
    def content_length(self) -> int:
        """Declared body length, falling back to the in-memory body size."""
        try:
            return int(self.headers["Content-Length"])
        except (KeyError, ValueError):
            return len(self.body)

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header. Returns self for chaining."""
        self.headers[name] = value
        return self

    def head_bytes(self) -> bytes:
        """
        Serialize the status line and header block, blank line included.

        Raises:
            ValueError: If a header name or value contains CR or LF, which
                        would otherwise let a value inject extra headers.
        """
        lines: List[str] = [self.status_line]

        for name, value in self.headers.items():
            if any(c in name or c in value for c in "\r\n"):
                raise ValueError(f"Header {name!r} contains a line break")
            lines.append(f"{name}: {value}")

        # Trailing "" produces the final CRLF pair that ends the head
        lines.append("")
        lines.append("")
        return "\r\n".join(lines).encode(HEADER_ENCODING)

    def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """
        Yield the serialized response piece by piece.

        In-memory bodies go out together with the head in one chunk.
        Streamed bodies follow the head in chunk_size reads, stopping at the
        declared Content-Length even if the stream has grown since, and the
        stream is closed afterwards.
        """
        head = self.head_bytes()

        if self.body_stream is None:
            yield head + self.body
            return

        yield head
        try:
            remaining = self.content_length
            while remaining > 0:
                chunk = self.body_stream.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk
        finally:
            self.close()

    def to_bytes(self) -> bytes:
        """Whole response as one byte string. Consumes a streamed body."""
        return b"".join(self.iter_chunks())

    def close(self) -> None:
        """Release the body stream, if any. Safe to call twice."""
        if self.body_stream is not None:
            self.body_stream.close()
            self.body_stream = None


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

    Each method returns self, build() returns the response:

        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .text("abc")
            .build())

        # HTTP/1.1 200 OK
        # Content-Type: text/plain
        # Content-Length: 3
        #
        # abc
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._stream: Optional[BinaryIO] = None

    # =========================================================================
    # STATUS AND HEADERS
    # =========================================================================

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    # =========================================================================
    # BODY
    # =========================================================================

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Raw body. Strings are UTF-8 encoded."""
        if isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = body
        return self

    def text(
        self,
        text: str,
        content_type: str = "text/plain",
        encoding: str = "utf-8",
    ) -> "ResponseBuilder":
        """
        Plain text body.

        Args:
            text: Body text.
            content_type: Content-Type value, "text/plain" by default.
            encoding: How to turn the text into bytes. Handlers echoing
                      request data pass HEADER_ENCODING so the bytes match
                      what the client sent.

        Content-Length is always set, even for empty text.
        """
        self._body = text.encode(encoding)
        self._headers["Content-Type"] = content_type
        self._headers["Content-Length"] = str(len(self._body))
        return self

    def stream(
        self,
        stream: BinaryIO,
        length: int,
        content_type: str = "application/octet-stream",
    ) -> "ResponseBuilder":
        """
        Body read from an open binary stream at write time.

        The length has to be known up front since there is no chunked
        encoding. The response takes ownership of the stream.
        """
        self._headers["Content-Type"] = content_type
        self._headers["Content-Length"] = str(length)
        self._stream = stream
        self._body = b""
        return self

    # =========================================================================
    # BUILD
    # =========================================================================

    def build(self) -> HTTPResponse:
        """
        Construct the response.

        Content-Length is filled in from the body when the body is
        non-empty and nobody set it explicitly.
        """
        headers = dict(self._headers)
        if self._body and "Content-Length" not in headers:
            headers["Content-Length"] = str(len(self._body))

        return HTTPResponse(
            status=self._status,
            headers=headers,
            body=self._body,
            body_stream=self._stream,
        )


class ResponseWriter:
    """
    Writes an HTTPResponse onto a connection.

    ==========================================================================
    THE SINK
    ==========================================================================

    Anything with sendall(bytes) works: a socket, a Connection, or a small
    recorder in tests. sendall() blocks until every byte is handed to the
    kernel, so partial writes never leak out.

        writer = ResponseWriter(chunk_size=64 * 1024)
        sent = writer.write(conn, response)

    ==========================================================================
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def write(self, sink, response: HTTPResponse) -> int:
        """
        Serialize and send the response.

        Args:
            sink: Object with a sendall(bytes) method.
            response: Response to send. Its body stream is closed afterwards
                      even if sending fails.

        Returns:
            Number of bytes handed to the sink.

        Raises:
            OSError: Whatever the sink raises on a broken connection.
        """
        written = 0
        try:
            for chunk in response.iter_chunks(self.chunk_size):
                sink.sendall(chunk)
                written += len(chunk)
        finally:
            response.close()
        return written


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
# One-liners for the responses the route handlers produce. Error responses
# carry an empty body.
#
# =============================================================================

def ok(body: Union[str, bytes] = b"", content_type: Optional[str] = None) -> HTTPResponse:
    """
    200 OK.

    With no arguments: empty body and no headers at all, which is what the
    root route answers.
    """
    builder = ResponseBuilder().status(HTTPStatus.OK)

    if isinstance(body, str):
        builder.text(body, content_type or "text/plain")
    elif body:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)

    return builder.build()


def created() -> HTTPResponse:
    """201 Created, empty body."""
    return ResponseBuilder().status(HTTPStatus.CREATED).build()


def not_found() -> HTTPResponse:
    """404 Not Found, empty body."""
    return ResponseBuilder().status(HTTPStatus.NOT_FOUND).build()


def method_not_allowed(allowed_methods: List[str]) -> HTTPResponse:
    """405 Method Not Allowed with the Allow header RFC 7231 asks for."""
    return (ResponseBuilder()
        .status(HTTPStatus.METHOD_NOT_ALLOWED)
        .header("Allow", ", ".join(allowed_methods))
        .build())


def internal_error() -> HTTPResponse:
    """500 Internal Server Error, empty body."""
    return ResponseBuilder().status(HTTPStatus.INTERNAL_SERVER_ERROR).build()


def service_unavailable() -> HTTPResponse:
    """503 Service Unavailable, sent when the connection cap is reached."""
    return ResponseBuilder().status(HTTPStatus.SERVICE_UNAVAILABLE).build()
