"""Request, response and error types shared by the proxy components."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from multidict import CIMultiDict


class HttpMethod(str, Enum):
    """HTTP request methods understood by the proxy."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    CONNECT = "CONNECT"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> HttpMethod:
        """Return the method named by ``value``, ignoring case and surrounding space."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"unsupported HTTP method: {value!r}")
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"unsupported HTTP method: {value!r}") from None


class ProxyError(Exception):
    """Base class of every error the proxy reports."""


class RoutingError(ProxyError):
    """No route could be found, or a route could not be built."""


class SecurityError(ProxyError):
    """A security provider rejected the request or response."""


class ProxyTimeoutError(ProxyError):
    """The upstream call did not finish in time."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"request timed out after {timeout}s")


class ClientError(ProxyError):
    """The upstream HTTP client failed."""


@dataclass
class RequestContext:
    """Per-request data shared between filters and providers."""

    client_ip: str | None = None
    start_time: float | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    def elapsed(self) -> float | None:
        """Seconds since the request started, if the start time is known."""
        if self.start_time is None:
            return None
        return time.monotonic() - self.start_time


@dataclass
class ResponseContext:
    """Per-response data shared between filters and providers."""

    receive_time: float | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


def _to_headers(headers: Any) -> CIMultiDict:
    if headers is None:
        return CIMultiDict()
    return CIMultiDict(headers)


@dataclass
class ProxyRequest:
    """An inbound request as seen by the proxy core."""

    method: HttpMethod
    path: str
    query: str | None = None
    headers: CIMultiDict = field(default_factory=CIMultiDict)
    body: bytes = b""
    context: RequestContext = field(default_factory=RequestContext)

    def __post_init__(self) -> None:
        self.method = HttpMethod.parse(self.method)
        self.headers = _to_headers(self.headers)
        self.body = bytes(self.body)

    @property
    def path_and_query(self) -> str:
        """The path followed by ``?query`` when a query string is present."""
        if self.query is None:
            return self.path
        return f"{self.path}?{self.query}"


@dataclass
class ProxyResponse:
    """A response on its way back to the client."""

    status: int
    headers: CIMultiDict = field(default_factory=CIMultiDict)
    body: bytes = b""
    context: ResponseContext = field(default_factory=ResponseContext)

    def __post_init__(self) -> None:
        if isinstance(self.status, bool) or not isinstance(self.status, int):
            raise ValueError(f"invalid status code: {self.status!r}")
        if not 100 <= self.status <= 999:
            raise ValueError(f"invalid status code: {self.status}")
        self.headers = _to_headers(self.headers)
        self.body = bytes(self.body)