import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlencode, urlsplit

import pytest

from promclient.api.client import (
    Config,
    HttpClient,
    Request,
    do_get_fallback,
    new_client,
)


@pytest.mark.parametrize(
    "address, endpoint, args, expected",
    [
        ("http://localhost:9090", "/test", None, "http://localhost:9090/test"),
        ("http://localhost", "/test", None, "http://localhost/test"),
        ("http://localhost:9090", "test", None, "http://localhost:9090/test"),
        ("http://localhost:9090/prefix", "/test", None, "http://localhost:9090/prefix/test"),
        ("https://localhost:9090/", "/test/", None, "https://localhost:9090/test"),
        (
            "http://localhost:9090",
            "/test/:param",
            {"param": "content"},
            "http://localhost:9090/test/content",
        ),
        (
            "http://localhost:9090",
            "/test/:param/more/:param",
            {"param": "content"},
            "http://localhost:9090/test/content/more/content",
        ),
        (
            "http://localhost:9090",
            "/test/:param/more/:foo",
            {"param": "content", "foo": "bar"},
            "http://localhost:9090/test/content/more/bar",
        ),
        (
            "http://localhost:9090",
            "/test/:param",
            {"nonexistent": "content"},
            "http://localhost:9090/test/:param",
        ),
    ],
)
def test_client_url(address, endpoint, args, expected):
    client = HttpClient(address, None)
    assert client.url(endpoint, args) == expected


def test_new_client_trims_trailing_slashes():
    client = new_client(Config("http://localhost:9090/prefix///"))
    assert client.url("x", None) == "http://localhost:9090/prefix/x"


def test_new_client_keeps_timeout():
    client = new_client(Config("http://localhost:9090", timeout=2.5))
    assert client.timeout == 2.5


def test_url_escapes_path():
    client = HttpClient("http://localhost:9090", None)
    assert client.url("/a b", None) == "http://localhost:9090/a%20b"


class _EchoHandler(BaseHTTPRequestHandler):
    def _respond(self, method):
        parts = urlsplit(self.path)
        form = {}
        if method == "POST":
            length = int(self.headers.get("Content-Length", 0))
            body = self.rfile.read(length).decode()
            for key, values in parse_qs(body, keep_blank_values=True).items():
                form.setdefault(key, []).extend(values)
        for key, values in parse_qs(parts.query, keep_blank_values=True).items():
            form.setdefault(key, []).extend(values)
        payload = json.dumps(
            {
                "Values": urlencode(sorted(form.items()), doseq=True),
                "Method": method,
                "ContentType": self.headers.get("Content-Type", ""),
            }
        ).encode()
        status = 200
        if method == "POST" and parts.path == "/blockPost":
            status = 405
        elif parts.path == "/missing":
            status = 404
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def do_GET(self):
        self._respond("GET")

    def do_POST(self):
        self._respond("POST")

    def log_message(self, format, *args):
        pass


@pytest.fixture
def server_url(monkeypatch):
    for name in ("http_proxy", "HTTP_PROXY", "all_proxy", "ALL_PROXY"):
        monkeypatch.delenv(name, raising=False)
    server = ThreadingHTTPServer(("127.0.0.1", 0), _EchoHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


def test_do_get_fallback_posts(server_url):
    client = HttpClient(server_url, 5.0)
    response = do_get_fallback(client, server_url, {"a": ["1", "2"]})
    data = json.loads(response.body)
    assert response.status_code == 200
    assert data["Method"] == "POST"
    assert data["Values"] == "a=1&a=2"
    assert data["ContentType"] == "application/x-www-form-urlencoded"


def test_do_get_fallback_falls_back_to_get(server_url):
    client = HttpClient(server_url, 5.0)
    response = do_get_fallback(client, server_url + "/blockPost", {"a": ["1", "2"]})
    data = json.loads(response.body)
    assert response.status_code == 200
    assert data["Method"] == "GET"
    assert data["Values"] == "a=1&a=2"


def test_do_returns_error_status(server_url):
    client = HttpClient(server_url, 5.0)
    response = client.do(Request("GET", server_url + "/missing"))
    assert response.status_code == 404
    assert json.loads(response.body)["Method"] == "GET"


def test_do_sends_headers_and_body(server_url):
    client = HttpClient(server_url, 5.0)
    request = Request(
        "POST",
        client.url("/echo", None),
        b"x=y",
        {"Content-Type": "text/plain"},
    )
    response = client.do(request, 5.0)
    data = json.loads(response.body)
    assert data["ContentType"] == "text/plain"
    assert data["Method"] == "POST"
    assert response.warnings == ()