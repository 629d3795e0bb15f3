"""
=============================================================================
HTTP REQUEST READER
=============================================================================

Reads exactly one HTTP/1.1 request off a connection's byte stream and turns
it into a structured HTTPRequest.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   POST /files/notes.txt HTTP/1.1\r\n      ← REQUEST LINE            │
    │   ─┬── ────────┬──────── ───┬────                                   │
    │    │           │            │                                        │
    │  Method      Path        Version                                     │
    │                                                                      │
    │   Host: localhost:4221\r\n                ← HEADERS                 │
    │   Content-Length: 5\r\n                     "Name: value" lines     │
    │   \r\n                                    ← BLANK LINE              │
    │   hello                                   ← BODY (5 bytes)          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
READING FROM A STREAM
=============================================================================

TCP hands us a byte stream, not messages. Instead of buffering until we
see \r\n\r\n and slicing, the reader pulls from a buffered binary stream
(socket.makefile("rb") in production, io.BytesIO in tests):

    1. readline()          → request line
    2. readline() ...      → header lines, until a bare \r\n
    3. read(Content-Length) → body, only for POST/PUT/PATCH

Whatever the client sends after the declared body stays unread. One
request per connection, no pipelining.

=============================================================================
PARSING RULES
=============================================================================

- Head lines are decoded as ISO-8859-1. Every byte maps to one character,
  so the echo handler can re-encode a path and get the original bytes.
- The request line must split into exactly three whitespace-separated
  tokens. The path is kept verbatim: no URL decoding, no query parsing.
- A header line is split on the FIRST ": ". Lines without it are skipped.
- Header names are lower-cased, so lookups are case-insensitive. A repeated
  header overwrites the earlier value.

=============================================================================
ERRORS
=============================================================================

Every failure here is connection-fatal. The client broke the protocol,
so the server logs and closes without trying to answer:

    MalformedRequestLine   request line is not METHOD SP PATH SP VERSION
    IncompleteHeaders      stream ended inside the header block
    InvalidContentLength   Content-Length is not a non-negative integer
    TruncatedBody          stream ended before Content-Length bytes
    RequestTooLarge        a line, the header count or the body is too big

=============================================================================
"""

from dataclasses import dataclass, field, replace
from typing import BinaryIO, Dict, Optional, Tuple
import io


# Latin-1 keeps a 1:1 byte ↔ character mapping for the request head
HEADER_ENCODING = "iso-8859-1"

# Only these methods get their Content-Length body read off the stream
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


class HTTPParseError(Exception):
    """
    Raised when a request cannot be read off the stream.

    Base class for all connection-fatal request errors. The server catches
    this at the connection boundary, logs it and closes the socket.
    """


class MalformedRequestLine(HTTPParseError):
    """The first line is not METHOD SP PATH SP VERSION."""


class IncompleteHeaders(HTTPParseError):
    """The stream ended before the blank line that closes the header block."""


class InvalidContentLength(HTTPParseError):
    """Content-Length is present but is not a non-negative integer."""


class TruncatedBody(HTTPParseError):
    """The stream ended before Content-Length body bytes arrived."""


class RequestTooLarge(HTTPParseError):
    """A request line, the header block or the body exceeds a limit."""


@dataclass(frozen=True)
class HTTPRequest:
    """
    A parsed HTTP request.

    =========================================================================
    LIFECYCLE
    =========================================================================

        stream ──RequestReader.read()──► HTTPRequest ──Router──► handler
                                              │
                                              └── frozen: nobody mutates it

    The router never touches the original. It hands the handler a copy with
    path_params filled in (see with_params()).

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:         Request method token ("GET", "POST", ...)
        path:           Raw request target, e.g. "/echo/abc"
        version:        Protocol version string, informational only
        headers:        Lower-cased header name → value
        body:           Raw body bytes (empty unless Content-Length was sent
                        on a POST/PUT/PATCH)
        path_params:    Values captured by the router, e.g. {"text": "abc"}
        client_address: (ip, port) of the peer, for logging

    =========================================================================
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    path_params: Dict[str, str] = field(default_factory=dict)
    client_address: Tuple[str, int] = ("", 0)

    @property
    def content_length(self) -> int:
        """Content-Length as an int, 0 when missing or unparseable."""
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def user_agent(self) -> str:
        """The User-Agent header value, empty string when absent."""
        return self.headers.get("user-agent", "")

    @property
    def accept_encoding(self) -> str:
        return self.headers.get("accept-encoding", "")

    def get_header(self, name: str, default: str = "") -> str:
        """
        Case-insensitive header lookup.

        Example:
            request.get_header("Content-Length")  # stored as content-length
        """
        return self.headers.get(name.lower(), default)

    def with_params(self, params: Dict[str, str]) -> "HTTPRequest":
        """Return a copy of this request carrying router-extracted params."""
        return replace(self, path_params=dict(params))


class RequestReader:
    """
    Reads one HTTPRequest from a readable binary stream.

    ==========================================================================
    READER FLOW
    ==========================================================================

        ┌───────────────────────────────────────────────────────────────────┐
        │  1. Request line ─── EOF before any byte? → None (client left)    │
        │     │                 not 3 tokens?       → MalformedRequestLine  │
        │     ▼                                                             │
        │  2. Header lines until bare CRLF                                  │
        │     │                 EOF first?          → IncompleteHeaders     │
        │     │                 no ": " in line?    → skipped               │
        │     ▼                                                             │
        │  3. Body (POST/PUT/PATCH with Content-Length)                     │
        │     │                 bad length?         → InvalidContentLength  │
        │     │                 EOF early?          → TruncatedBody         │
        │     ▼                                                             │
        │  4. HTTPRequest                                                   │
        └───────────────────────────────────────────────────────────────────┘

    ==========================================================================
    LIMITS
    ==========================================================================

    A reader with no limits lets one client pin unbounded memory. Each limit
    raises RequestTooLarge:

        max_line_size     longest request/header line in bytes (without CRLF)
        max_header_count  most header lines
        max_body_size     largest Content-Length accepted

    ==========================================================================
    """

    def __init__(
        self,
        max_line_size: int = 8192,
        max_header_count: int = 100,
        max_body_size: int = 10 * 1024 * 1024,
    ):
        self.max_line_size = max_line_size
        self.max_header_count = max_header_count
        self.max_body_size = max_body_size

    def read(
        self,
        stream: BinaryIO,
        client_address: Tuple[str, int] = ("", 0),
    ) -> Optional[HTTPRequest]:
        """
        Read one request from the stream.

        Args:
            stream: Buffered binary stream positioned at the request start.
            client_address: Peer (ip, port), stored on the request.

        Returns:
            The parsed request, or None if the stream was already at EOF.

        Raises:
            HTTPParseError: Any of its subclasses, see module docstring.
            OSError: Socket-level read failures (including timeouts).
        """
        # =====================================================================
        # STEP 1: Request line
        # =====================================================================
        request_line = self._read_line(stream)
        if request_line is None:
            return None

        method, path, version = self._parse_request_line(request_line)

        # =====================================================================
        # STEP 2: Header block
        # =====================================================================
        headers = self._read_headers(stream)

        # =====================================================================
        # STEP 3: Body, only when the method carries one
        # =====================================================================
        # GET bodies are never read. Whatever follows the declared length
        # stays in the stream.
        body = b""
        if method in BODY_METHODS and "content-length" in headers:
            length = self._parse_content_length(headers["content-length"])
            body = self._read_body(stream, length)

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            body=body,
            client_address=client_address,
        )

    def _read_line(self, stream: BinaryIO) -> Optional[str]:
        """
        Read one CRLF-terminated line, without its terminator.

        Returns None at EOF. A line that hits the size limit before its
        newline raises RequestTooLarge.
        """
        # +2 leaves room for the CRLF of a line exactly at the limit
        raw = stream.readline(self.max_line_size + 2)
        if not raw:
            return None

        if not raw.endswith(b"\n") and len(raw) > self.max_line_size:
            raise RequestTooLarge(
                f"Line exceeds {self.max_line_size} bytes"
            )

        return raw.decode(HEADER_ENCODING).rstrip("\r\n")

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        """
        Split "METHOD SP PATH SP VERSION" into its three tokens.

        Raises:
            MalformedRequestLine: If the line is not exactly three tokens.
        """
        parts = line.split()
        if len(parts) != 3:
            raise MalformedRequestLine(f"Malformed request line: {line!r}")

        method, path, version = parts
        return method, path, version

    def _read_headers(self, stream: BinaryIO) -> Dict[str, str]:
        """
        Read "Name: value" lines until the blank line.

        Names are lower-cased; a repeated name keeps the last value.
        """
        headers: Dict[str, str] = {}
        count = 0

        while True:
            line = self._read_line(stream)
            if line is None:
                raise IncompleteHeaders("Stream closed inside the header block")

            if line == "":
                return headers

            count += 1
            if count > self.max_header_count:
                raise RequestTooLarge(
                    f"More than {self.max_header_count} header lines"
                )

            # -----------------------------------------------------------------
            # Split on the first ": " only
            # -----------------------------------------------------------------
            # "Host: localhost:4221" → ("Host", "localhost:4221")
            # "garbage" has no delimiter and is ignored
            name, sep, value = line.partition(": ")
            if not sep:
                continue

            headers[name.strip().lower()] = value.rstrip()

    def _parse_content_length(self, value: str) -> int:
        try:
            length = int(value.strip())
        except ValueError:
            raise InvalidContentLength(f"Invalid Content-Length: {value!r}")

        if length < 0:
            raise InvalidContentLength(f"Negative Content-Length: {length}")

        if length > self.max_body_size:
            raise RequestTooLarge(
                f"Body of {length} bytes exceeds {self.max_body_size}"
            )

        return length

    def _read_body(self, stream: BinaryIO, length: int) -> bytes:
        """
        Read exactly `length` bytes, blocking until they arrive.

        Raises:
            TruncatedBody: If the stream ends first.
        """
        chunks = []
        remaining = length

        while remaining > 0:
            chunk = stream.read(remaining)
            if not chunk:
                raise TruncatedBody(
                    f"Expected {length} body bytes, got {length - remaining}"
                )
            chunks.append(chunk)
            remaining -= len(chunk)

        return b"".join(chunks)


def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0),
    **limits: int,
) -> Optional[HTTPRequest]:
    """
    Read a request from an in-memory byte string.

    Convenience wrapper around RequestReader for tests and tools that
    already hold the raw bytes.

    Args:
        data: Raw request bytes.
        client_address: Peer (ip, port).
        **limits: Forwarded to RequestReader (max_line_size, ...).
    """
    return RequestReader(**limits).read(io.BytesIO(data), client_address)
