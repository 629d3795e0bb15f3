"""
End-to-end tests against a running server over real sockets.
"""

import gzip
import logging
import socket
import threading
import time

import pytest

from minihttp import HTTPServer, ServerConfig
from minihttp.http import HTTPRequest, ok
from minihttp.server import create_app
from minihttp.http.status_codes import HTTPStatus


def split_response(raw: bytes):
    """Split raw response bytes into (status line, headers dict, body)."""
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("iso-8859-1").split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(": ")
        headers[name] = value
    return lines[0], headers, body


def wait_for_idle(timeout: float = 5.0):
    """Wait until no connection threads are alive."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if not any(t.name.startswith("conn-") for t in threading.enumerate()):
            return
        time.sleep(0.05)
    raise RuntimeError("connection threads still running")


class TestRoutes:
    """The fixed routes, checked byte for byte."""

    def test_root(self, test_server):
        raw = test_server.request(b"GET / HTTP/1.1\r\nHost: localhost:4221\r\n\r\n")

        assert raw == b"HTTP/1.1 200 OK\r\n\r\n"

    def test_unknown_path(self, test_server):
        raw = test_server.request(b"GET /index.html HTTP/1.1\r\n\r\n")

        assert raw == b"HTTP/1.1 404 Not Found\r\n\r\n"

    def test_echo(self, test_server):
        raw = test_server.request(b"GET /echo/abc HTTP/1.1\r\nHost: localhost:4221\r\n\r\n")

        assert raw == (
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Length: 3\r\n"
            b"\r\n"
            b"abc"
        )

    def test_echo_empty(self, test_server):
        raw = test_server.request(b"GET /echo/ HTTP/1.1\r\n\r\n")

        assert raw == b"HTTP/1.1 200 OK\r\nContent-Type: text/plain\r\nContent-Length: 0\r\n\r\n"

    def test_echo_is_not_decoded(self, test_server):
        raw = test_server.request(b"GET /echo/a%20b/c HTTP/1.1\r\n\r\n")

        assert split_response(raw)[2] == b"a%20b/c"

    def test_user_agent(self, test_server):
        raw = test_server.request(
            b"GET /user-agent HTTP/1.1\r\n"
            b"Host: localhost:4221\r\n"
            b"User-Agent: foobar/1.2.3\r\n"
            b"\r\n"
        )

        assert raw == (
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Length: 12\r\n"
            b"\r\n"
            b"foobar/1.2.3"
        )

    def test_user_agent_header_case(self, test_server):
        raw = test_server.request(b"GET /user-agent HTTP/1.1\r\nuser-agent: curl/8.4.0\r\n\r\n")

        assert split_response(raw)[2] == b"curl/8.4.0"

    @pytest.mark.parametrize("method", [b"PUT", b"DELETE", b"PATCH"])
    def test_method_not_allowed(self, test_server, method):
        raw = test_server.request(method + b" /echo/abc HTTP/1.1\r\nContent-Length: 0\r\n\r\n")

        assert raw == b"HTTP/1.1 405 Method Not Allowed\r\nAllow: GET, POST\r\n\r\n"


class TestFiles:
    """GET and POST under /files/."""

    def test_get_file(self, test_server, tmp_path):
        (tmp_path / "foo").write_bytes(b"Hello, World!")

        raw = test_server.request(b"GET /files/foo HTTP/1.1\r\n\r\n")

        assert raw == (
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: application/octet-stream\r\n"
            b"Content-Length: 13\r\n"
            b"\r\n"
            b"Hello, World!"
        )

    def test_get_large_file(self, test_server, tmp_path):
        payload = bytes(range(256)) * 1024  # 256 KiB, several chunks
        (tmp_path / "big.bin").write_bytes(payload)

        raw = test_server.request(b"GET /files/big.bin HTTP/1.1\r\n\r\n")
        status, headers, body = split_response(raw)

        assert status == "HTTP/1.1 200 OK"
        assert headers["Content-Length"] == str(len(payload))
        assert body == payload

    def test_get_missing_file(self, test_server):
        raw = test_server.request(b"GET /files/non_existent_file HTTP/1.1\r\n\r\n")

        assert raw == b"HTTP/1.1 404 Not Found\r\n\r\n"

    def test_get_outside_directory(self, test_server, tmp_path):
        raw = test_server.request(b"GET /files/../../etc/passwd HTTP/1.1\r\n\r\n")

        assert raw == b"HTTP/1.1 404 Not Found\r\n\r\n"

    def test_post_then_get(self, test_server, tmp_path):
        body = b"12345 67890"
        raw = test_server.request(
            b"POST /files/number HTTP/1.1\r\n"
            b"Content-Type: application/octet-stream\r\n"
            b"Content-Length: 11\r\n"
            b"\r\n" + body
        )

        assert raw == b"HTTP/1.1 201 Created\r\n\r\n"
        assert (tmp_path / "number").read_bytes() == body

        raw = test_server.request(b"GET /files/number HTTP/1.1\r\n\r\n")
        assert split_response(raw)[2] == body

    def test_post_binary_body(self, test_server, tmp_path):
        body = bytes(range(256))
        request = b"POST /files/data.bin HTTP/1.1\r\nContent-Length: 256\r\n\r\n" + body

        assert test_server.request(request) == b"HTTP/1.1 201 Created\r\n\r\n"
        assert (tmp_path / "data.bin").read_bytes() == body

    def test_post_into_missing_directory(self, test_server):
        raw = test_server.request(b"POST /files/no/such/file HTTP/1.1\r\nContent-Length: 1\r\n\r\nx")

        assert raw == b"HTTP/1.1 500 Internal Server Error\r\n\r\n"


class TestCompression:
    """gzip negotiation on /echo/."""

    def test_gzip_echo(self, test_server):
        raw = test_server.request(
            b"GET /echo/abc HTTP/1.1\r\nAccept-Encoding: gzip\r\n\r\n"
        )
        status, headers, body = split_response(raw)

        assert status == "HTTP/1.1 200 OK"
        assert headers["Content-Type"] == "text/plain"
        assert headers["Content-Encoding"] == "gzip"
        assert headers["Content-Length"] == str(len(body))
        assert gzip.decompress(body) == b"abc"

    def test_gzip_among_other_encodings(self, test_server):
        raw = test_server.request(
            b"GET /echo/abc HTTP/1.1\r\nAccept-Encoding: encoding-1, gzip, encoding-2\r\n\r\n"
        )

        assert split_response(raw)[1]["Content-Encoding"] == "gzip"

    def test_unsupported_encoding(self, test_server):
        raw = test_server.request(
            b"GET /echo/abc HTTP/1.1\r\nAccept-Encoding: invalid-encoding\r\n\r\n"
        )

        assert raw == b"HTTP/1.1 200 OK\r\nContent-Type: text/plain\r\nContent-Length: 3\r\n\r\nabc"

    def test_gzip_disabled(self, server_factory):
        server = server_factory(gzip=False)

        raw = server.request(b"GET /echo/abc HTTP/1.1\r\nAccept-Encoding: gzip\r\n\r\n")

        assert "Content-Encoding" not in split_response(raw)[1]


class TestConnectionHandling:
    """Malformed input, one request per connection, concurrency."""

    @pytest.mark.parametrize("raw", [
        b"GARBAGE\r\n\r\n",
        b"GET /\r\n\r\n",
        b"POST /files/x HTTP/1.1\r\nContent-Length: abc\r\n\r\n",
    ])
    def test_malformed_request_gets_no_response(self, test_server, raw):
        assert test_server.request(raw) == b""

    def test_truncated_body_gets_no_response(self, test_server, tmp_path):
        with socket.create_connection(("127.0.0.1", test_server.port), timeout=5) as s:
            s.sendall(b"POST /files/short HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc")
            s.shutdown(socket.SHUT_WR)
            assert s.recv(1024) == b""

        assert not (tmp_path / "short").exists()

    def test_one_request_per_connection(self, test_server):
        raw = test_server.request(
            b"GET /echo/one HTTP/1.1\r\n\r\nGET /echo/two HTTP/1.1\r\n\r\n"
        )

        assert raw.count(b"HTTP/1.1 200 OK") == 1
        assert raw.endswith(b"one")

    def test_server_keeps_serving_after_errors(self, test_server):
        test_server.request(b"GARBAGE\r\n\r\n")

        assert test_server.request(b"GET / HTTP/1.1\r\n\r\n") == b"HTTP/1.1 200 OK\r\n\r\n"

    def test_slow_client_does_not_block_others(self, test_server):
        with socket.create_connection(("127.0.0.1", test_server.port), timeout=5) as slow:
            slow.sendall(b"GET /echo/slow HTTP/1.1\r\n")

            raw = test_server.request(b"GET /echo/fast HTTP/1.1\r\n\r\n", timeout=2.0)
            assert raw.endswith(b"fast")

            slow.sendall(b"\r\n")
            assert slow.recv(1024).endswith(b"slow")

    def test_concurrent_requests(self, test_server):
        results = {}

        def fetch(i):
            results[i] = test_server.request(f"GET /echo/{i} HTTP/1.1\r\n\r\n".encode())

        threads = [threading.Thread(target=fetch, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert len(results) == 20
        for i, raw in results.items():
            assert raw.endswith(str(i).encode())

    def test_connection_limit(self, server_factory):
        server = server_factory(max_connections=1)
        # Let the startup check connection clear the accept loop first
        server.request(b"GET / HTTP/1.1\r\n\r\n")
        wait_for_idle()

        with socket.create_connection(("127.0.0.1", server.port), timeout=5) as held:
            held.sendall(b"GET /echo/held HTTP/1.1\r\n")
            time.sleep(0.2)

            raw = server.request(b"GET / HTTP/1.1\r\n\r\n")
            assert raw == b"HTTP/1.1 503 Service Unavailable\r\n\r\n"

            held.sendall(b"\r\n")
            assert held.recv(1024).endswith(b"held")

    def test_trickling_rejected_client_does_not_stall_accept(self, server_factory):
        server = server_factory(max_connections=1)
        server.request(b"GET / HTTP/1.1\r\n\r\n")
        wait_for_idle()

        held = socket.create_connection(("127.0.0.1", server.port), timeout=5)
        held.sendall(b"GET /echo/held HTTP/1.1\r\n")
        time.sleep(0.2)

        rejected = socket.create_connection(("127.0.0.1", server.port), timeout=5)
        stop = threading.Event()

        def trickle():
            while not stop.is_set():
                try:
                    rejected.sendall(b"x")
                except OSError:
                    return
                stop.wait(0.1)

        sender = threading.Thread(target=trickle, daemon=True)
        sender.start()
        try:
            time.sleep(0.3)
            held.sendall(b"\r\n")
            assert held.recv(1024).endswith(b"held")
            held.close()
            wait_for_idle()

            start = time.monotonic()
            raw = server.request(b"GET / HTTP/1.1\r\n\r\n")
            elapsed = time.monotonic() - start
        finally:
            stop.set()
            sender.join(timeout=2)
            rejected.close()

        assert raw == b"HTTP/1.1 200 OK\r\n\r\n"
        assert elapsed < 1.0


class TestHTTPServer:
    """HTTPServer without a listening socket."""

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            HTTPServer(ServerConfig(port=70000))

    def test_handler_exception_becomes_500(self, config, caplog):
        caplog.set_level(logging.INFO)
        server = HTTPServer(config)

        def broken(request):
            raise RuntimeError("boom")

        server.router.add_route("/boom", broken)
        response = server.handle(HTTPRequest(method="GET", path="/boom"))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.body == b""

        assert len([r for r in caplog.records if r.exc_info]) == 1
        access = [r for r in caplog.records if r.name == "minihttp.access"]
        assert len(access) == 1
        assert '"GET /boom" 500 ' in access[0].getMessage()

    def test_handle_runs_middleware(self, config):
        server = HTTPServer(config)
        request = HTTPRequest(
            method="GET",
            path="/echo/abc",
            headers={"accept-encoding": "gzip"},
            path_params={},
        )

        response = server.handle(request)

        assert gzip.decompress(response.body) == b"abc"

    def test_address_after_start(self, server_factory, free_port):
        server = server_factory()

        assert server.server.address == ("127.0.0.1", free_port)
        assert server.server.is_running

    def test_extra_route(self, config):
        server = HTTPServer(config)
        server.router.add_route("/ping", lambda request: ok("pong"))

        assert server.handle(HTTPRequest(method="GET", path="/ping")).body == b"pong"

    def test_create_app(self, config):
        app = create_app(config)

        assert isinstance(app, HTTPServer)
        assert app.config is config
        assert not app.is_running

    def test_shutdown_stops_accept_loop(self, server_factory):
        server = server_factory()

        server.server.shutdown()

        assert server.server.wait_for_shutdown(timeout=5.0)
        assert not server.server.is_running
