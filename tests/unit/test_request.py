"""
Unit tests for HTTP request reading.
"""

import dataclasses
import io

import pytest

from minihttp.http.request import (
    HTTPRequest,
    RequestReader,
    HTTPParseError,
    MalformedRequestLine,
    IncompleteHeaders,
    InvalidContentLength,
    TruncatedBody,
    RequestTooLarge,
    parse_request,
)


class TestRequestReader:
    """Tests for RequestReader class."""

    def test_read_simple_get(self, sample_get_request: bytes):
        """Test reading a simple GET request."""
        reader = RequestReader()
        request = reader.read(io.BytesIO(sample_get_request), ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/echo/abc"
        assert request.version == "HTTP/1.1"
        assert request.body == b""
        assert request.client_address == ("127.0.0.1", 12345)

    def test_read_headers(self, sample_get_request: bytes):
        """Header names are lower-cased, values kept."""
        request = parse_request(sample_get_request)

        assert request.headers["host"] == "localhost:4221"
        assert request.headers["accept"] == "*/*"
        assert request.user_agent == "pytest/8.0"

    def test_header_lookup_is_case_insensitive(self, sample_get_request: bytes):
        request = parse_request(sample_get_request)

        assert request.get_header("User-Agent") == "pytest/8.0"
        assert request.get_header("USER-AGENT") == "pytest/8.0"
        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_read_post_with_body(self, sample_post_request: bytes):
        """Test reading a POST request with a body."""
        request = parse_request(sample_post_request)

        assert request.method == "POST"
        assert request.path == "/files/test.txt"
        assert request.content_length == 5
        assert request.body == b"hello"

    def test_empty_stream_returns_none(self):
        """A client that connects and sends nothing is not an error."""
        assert RequestReader().read(io.BytesIO(b"")) is None

    def test_path_is_not_url_decoded(self):
        request = parse_request(b"GET /echo/a%20b?x=1 HTTP/1.1\r\n\r\n")

        assert request.path == "/echo/a%20b?x=1"

    def test_dot_segments_are_kept(self):
        """Containment is the file handler's job, not the reader's."""
        request = parse_request(b"GET /files/../secret HTTP/1.1\r\n\r\n")

        assert request.path == "/files/../secret"

    def test_head_decoded_as_latin1(self):
        """Every byte of the head survives decode/encode."""
        request = parse_request(b"GET /echo/caf\xe9 HTTP/1.1\r\nUser-Agent: \xff\r\n\r\n")

        assert request.path.encode("iso-8859-1") == b"/echo/caf\xe9"
        assert request.user_agent.encode("iso-8859-1") == b"\xff"

    def test_bare_lf_line_endings(self):
        request = parse_request(b"GET / HTTP/1.1\nHost: test\n\n")

        assert request.path == "/"
        assert request.headers["host"] == "test"


class TestHeaderParsing:
    """Tests for the header block."""

    def test_duplicate_header_last_wins(self):
        raw = b"GET / HTTP/1.1\r\nX-Test: first\r\nx-test: second\r\n\r\n"

        assert parse_request(raw).headers["x-test"] == "second"

    def test_line_without_delimiter_is_ignored(self):
        raw = b"GET / HTTP/1.1\r\nGarbage\r\nHost:nospace\r\nAccept: */*\r\n\r\n"
        request = parse_request(raw)

        assert request.headers == {"accept": "*/*"}

    def test_split_on_first_delimiter_only(self):
        raw = b"GET / HTTP/1.1\r\nX-Note: a: b: c\r\n\r\n"

        assert parse_request(raw).headers["x-note"] == "a: b: c"

    def test_trailing_whitespace_stripped(self):
        raw = b"GET / HTTP/1.1\r\nUser-Agent: curl/8.0   \r\n\r\n"

        assert parse_request(raw).user_agent == "curl/8.0"

    def test_eof_inside_headers(self):
        raw = b"GET / HTTP/1.1\r\nHost: test\r\n"

        with pytest.raises(IncompleteHeaders):
            parse_request(raw)


class TestRequestLine:
    """Tests for request line validation."""

    @pytest.mark.parametrize("line", [
        b"GET\r\n\r\n",
        b"GET /\r\n\r\n",
        b"GET / HTTP/1.1 extra\r\n\r\n",
        b"\r\n\r\n",
    ])
    def test_malformed_request_line(self, line: bytes):
        with pytest.raises(MalformedRequestLine):
            parse_request(line)

    def test_errors_share_a_base_class(self):
        """The server catches every reader failure with one except clause."""
        with pytest.raises(HTTPParseError):
            parse_request(b"NONSENSE\r\n\r\n")

    def test_any_method_token_is_accepted(self):
        """Unsupported methods are the router's concern."""
        request = parse_request(b"PUT / HTTP/1.1\r\n\r\n")

        assert request.method == "PUT"


class TestBody:
    """Tests for Content-Length body reading."""

    def test_get_body_is_not_read(self):
        raw = b"GET / HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello"

        assert parse_request(raw).body == b""

    def test_post_without_content_length_has_empty_body(self):
        raw = b"POST /files/a HTTP/1.1\r\n\r\nignored"

        assert parse_request(raw).body == b""

    def test_bytes_after_body_stay_unread(self):
        stream = io.BytesIO(
            b"POST /files/a HTTP/1.1\r\nContent-Length: 3\r\n\r\nabcEXTRA"
        )
        request = RequestReader().read(stream)

        assert request.body == b"abc"
        assert stream.read() == b"EXTRA"

    @pytest.mark.parametrize("value", [b"abc", b"-1", b"1.5", b""])
    def test_invalid_content_length(self, value: bytes):
        raw = b"POST /files/a HTTP/1.1\r\nContent-Length: " + value + b"\r\n\r\n"

        with pytest.raises(InvalidContentLength):
            parse_request(raw)

    def test_truncated_body(self):
        raw = b"POST /files/a HTTP/1.1\r\nContent-Length: 10\r\n\r\nhello"

        with pytest.raises(TruncatedBody):
            parse_request(raw)

    def test_zero_length_body(self):
        raw = b"POST /files/a HTTP/1.1\r\nContent-Length: 0\r\n\r\n"

        assert parse_request(raw).body == b""


class TestLimits:
    """Tests for request size limits."""

    def test_line_too_long(self):
        raw = b"GET /" + b"a" * 100 + b" HTTP/1.1\r\n\r\n"

        with pytest.raises(RequestTooLarge):
            parse_request(raw, max_line_size=16)

    def test_line_at_limit_is_accepted(self):
        line = b"GET /abcd HTTP/1.1"  # 18 bytes
        request = parse_request(line + b"\r\n\r\n", max_line_size=len(line))

        assert request.path == "/abcd"

    def test_too_many_headers(self):
        raw = b"GET / HTTP/1.1\r\nA: 1\r\nB: 2\r\nC: 3\r\n\r\n"

        with pytest.raises(RequestTooLarge):
            parse_request(raw, max_header_count=2)

    def test_body_too_large(self):
        raw = b"POST /files/a HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello"

        with pytest.raises(RequestTooLarge):
            parse_request(raw, max_body_size=4)


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_request_is_frozen(self):
        request = HTTPRequest(method="GET", path="/")

        with pytest.raises(dataclasses.FrozenInstanceError):
            request.path = "/other"

    def test_with_params_returns_copy(self):
        request = HTTPRequest(method="GET", path="/echo/abc")
        routed = request.with_params({"text": "abc"})

        assert routed.path_params == {"text": "abc"}
        assert routed.path == "/echo/abc"
        assert request.path_params == {}

    def test_content_length_defaults(self):
        assert HTTPRequest(method="GET", path="/").content_length == 0
        bad = HTTPRequest(method="GET", path="/", headers={"content-length": "x"})
        assert bad.content_length == 0

    def test_accept_encoding(self):
        request = HTTPRequest(
            method="GET", path="/", headers={"accept-encoding": "gzip"}
        )

        assert request.accept_encoding == "gzip"
