"""Shared test doubles: fake clock, scripted HttpClient and a local HTTP server."""

import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from confcore import Clock, HttpClient


def make_raw_response(status_code=200, body=b"", headers=None):
    """Build a fully buffered requests.Response."""
    response = requests.Response()
    response.status_code = status_code
    response._content = body
    response._content_consumed = True
    response.headers = CaseInsensitiveDict(headers or {})
    return response


class FakeClock(Clock):
    """Clock whose time only moves when slept on or advanced."""

    def __init__(self, start=1000.0):
        self._now = start
        self.sleeps = []
        self._lock = threading.Lock()

    def now(self):
        with self._lock:
            return self._now

    def sleep(self, seconds, ctx=None):
        if ctx is not None:
            ctx.raise_if_done()
        if seconds <= 0:
            return
        with self._lock:
            self.sleeps.append(seconds)
            self._now += seconds

    def advance(self, seconds):
        with self._lock:
            self._now += seconds


class FakeHttpClient(HttpClient):
    """
    HttpClient replaying queued outcomes.

    Each queued item is a requests.Response, an exception to raise, or a
    callable taking the PreparedRequest and returning one of those. The last
    item is repeated once the queue runs out.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or [make_raw_response(200)]
        self.requests = []
        self.timeouts = []
        self._lock = threading.Lock()

    def script(self, *outcomes):
        """Replace the queued outcomes."""
        with self._lock:
            self.outcomes = list(outcomes)

    def send(self, request, timeout=None):
        with self._lock:
            self.requests.append(request)
            self.timeouts.append(timeout)
            outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]

        if callable(outcome) and not isinstance(outcome, requests.Response):
            outcome = outcome(request)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class LocalServer:
    """
    Threaded HTTP server answering through a replaceable `respond` function.

    `respond(handler)` receives the request handler and calls `handler.reply()`
    or `handler.hang_up()`.
    """

    def __init__(self):
        self.requests = []
        self.respond = lambda handler: handler.reply(200, b"{}")
        owner = self

        class Handler(BaseHTTPRequestHandler):
            protocol_version = "HTTP/1.1"

            def log_message(self, format, *args):
                pass

            def reply(self, status, body=b"", headers=None):
                self.send_response(status)
                for key, value in (headers or {}).items():
                    self.send_header(key, value)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def hang_up(self):
                self.close_connection = True

            def _dispatch(self):
                length = int(self.headers.get("Content-Length") or 0)
                body = self.rfile.read(length) if length else b""
                owner.requests.append((self.command, self.path, dict(self.headers), body))
                owner.respond(self)

            do_GET = do_POST = do_PUT = do_PATCH = do_DELETE = _dispatch

        self._server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self._server.daemon_threads = True
        self.url = f"http://127.0.0.1:{self._server.server_port}"
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)

    def start(self):
        self._thread.start()
        return self

    def stop(self):
        self._server.shutdown()
        self._server.server_close()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def http_client():
    return FakeHttpClient()


@pytest.fixture
def raw_response():
    return make_raw_response


@pytest.fixture
def local_server():
    server = LocalServer().start()
    yield server
    server.stop()
