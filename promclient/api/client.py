"""A small HTTP client for talking to a Prometheus server."""

from __future__ import annotations

import posixpath
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from urllib.parse import quote, unquote, urlencode, urlsplit, urlunsplit

DEFAULT_TIMEOUT = 30.0
_PATH_SAFE = "/:@!$&'()*+,;=~"
_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
_METHOD_NOT_ALLOWED = 405


@dataclass
class Config:
    """Settings for a new client: the server address and a request timeout."""

    address: str
    timeout: float | None = DEFAULT_TIMEOUT


@dataclass
class Request:
    """An HTTP request to be sent by a Client."""

    method: str
    url: str
    body: bytes | None = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class Response:
    """An HTTP response with its complete body.

    Responses with error status codes are returned, not raised.
    """

    status_code: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()


class Client(ABC):
    """Builds endpoint URLs and performs requests."""

    @abstractmethod
    def url(self, endpoint: str, args: Mapping[str, str] | None = None) -> str:
        """Return the full URL of an endpoint, with ``:name`` parts replaced."""

    @abstractmethod
    def do(self, request: Request, timeout: float | None = None) -> Response:
        """Send the request and return the response with its body read."""


def _join_path(*elements: str) -> str:
    joined = "/".join(element for element in elements if element)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def _encode_values(args: Mapping[str, str | Sequence[str]]) -> str:
    """Encode query values sorted by key, as a form body or query string."""
    items = []
    for key in sorted(args):
        values = args[key]
        if isinstance(values, str):
            values = [values]
        items.extend((key, value) for value in values)
    return urlencode(items)


class HttpClient(Client):
    """A Client that sends requests to a server at a base address."""

    def __init__(self, endpoint: str, timeout: float | None = DEFAULT_TIMEOUT) -> None:
        parts = urlsplit(endpoint)
        self._endpoint = parts._replace(path=unquote(parts.path).rstrip("/"))
        self.timeout = timeout
        self._opener = urllib.request.build_opener()

    def url(self, endpoint: str, args: Mapping[str, str] | None = None) -> str:
        path = _join_path(self._endpoint.path, endpoint)
        for name, value in (args or {}).items():
            path = path.replace(":" + name, value)
        if path and not path.startswith("/") and self._endpoint.netloc:
            path = "/" + path
        return urlunsplit(self._endpoint._replace(path=quote(path, safe=_PATH_SAFE)))

    def do(self, request: Request, timeout: float | None = None) -> Response:
        effective = self.timeout if timeout is None else timeout
        http_request = urllib.request.Request(
            request.url,
            data=request.body,
            headers=dict(request.headers),
            method=request.method,
        )
        try:
            with self._opener.open(http_request, timeout=effective) as reply:
                return Response(reply.status, reply.read(), dict(reply.headers.items()))
        except urllib.error.HTTPError as err:
            try:
                body = err.read()
            finally:
                err.close()
            headers = dict(err.headers.items()) if err.headers is not None else {}
            return Response(err.code, body, headers)


def new_client(config: Config) -> HttpClient:
    """Return a client for the address in ``config``."""
    return HttpClient(config.address, config.timeout)


def do_get_fallback(
    client: Client,
    url: str,
    args: Mapping[str, str | Sequence[str]],
    timeout: float | None = None,
) -> Response:
    """POST the arguments as a form; on a 405 answer, retry them as a GET query."""
    encoded = _encode_values(args)
    post = Request(
        "POST",
        url,
        encoded.encode("ascii"),
        {"Content-Type": _FORM_CONTENT_TYPE},
    )
    response = client.do(post, timeout)
    if response.status_code != _METHOD_NOT_ALLOWED:
        return response
    get_url = urlunsplit(urlsplit(url)._replace(query=encoded))
    return client.do(Request("GET", get_url), timeout)