"""HTTP front end: turns incoming requests into proxy requests and back."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import signal
import time
from dataclasses import dataclass
from typing import Any, Protocol

from aiohttp import web
from multidict import CIMultiDict

from .health import HealthServer
from .messages import (
    ClientError,
    HttpMethod,
    ProxyError,
    ProxyRequest,
    ProxyResponse,
    ProxyTimeoutError,
    RequestContext,
    RoutingError,
    SecurityError,
)

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 30.0

# aiohttp computes these itself from the body it sends.
_MANAGED_HEADERS = frozenset({"content-length", "transfer-encoding"})


class ProxyCore(Protocol):
    """What the server needs from the request-processing core."""

    async def process_request(self, request: ProxyRequest) -> ProxyResponse: ...


def _port(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 65535:
        raise ValueError(f"`{key}` must be a port number between 0 and 65535")
    return value


@dataclass
class ServerConfig:
    """Where the proxy and its health endpoints listen."""

    host: str = "127.0.0.1"
    port: int = 8080
    health_port: int = 8081

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ServerConfig:
        """Build from a mapping; missing keys take defaults."""
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError("server config must be a mapping")
        host = data.get("host", "127.0.0.1")
        if not isinstance(host, str):
            raise ValueError("`host` must be a string")
        return cls(
            host=host,
            port=_port(data, "port", 8080),
            health_port=_port(data, "health_port", 8081),
        )


def error_response(error: BaseException) -> ProxyResponse:
    """The response sent to the client when processing failed with ``error``."""
    if isinstance(error, ProxyTimeoutError):
        logger.warning("Request timed out after %ss", error.timeout)
        status, message = 504, f"Gateway Timeout after {error.timeout}s"
    elif isinstance(error, RoutingError):
        logger.warning("Routing error: %s", error)
        status, message = 404, "Route not found"
    elif isinstance(error, SecurityError):
        logger.warning("Security error: %s", error)
        status, message = 403, "Forbidden"
    elif isinstance(error, ClientError):
        logger.error("Client error: %s", error)
        status, message = 502, "Bad Gateway"
    else:
        logger.error("Internal error: %s", error)
        status, message = 500, "Internal Server Error"
    return ProxyResponse(status=status, body=message.encode())


async def convert_request(request: web.Request, client_ip: str) -> ProxyRequest:
    """Turn an incoming server request into a :class:`ProxyRequest`."""
    try:
        method = HttpMethod.parse(request.method)
    except ValueError as exc:
        raise ProxyError(str(exc)) from exc

    raw = request.raw_path
    path, sep, query = raw.partition("?")
    headers = CIMultiDict(request.headers)
    logger.debug("Converting request: %s %s with %d headers", method, path, len(headers))

    try:
        body = await request.read()
    except (OSError, web.HTTPException) as exc:
        raise ProxyError(f"Failed to read request body: {exc}") from exc

    return ProxyRequest(
        method=method,
        path=path,
        query=query if sep else None,
        headers=headers,
        body=body,
        context=RequestContext(client_ip=client_ip, start_time=time.monotonic()),
    )


def convert_proxy_response(response: ProxyResponse) -> web.Response:
    """Turn a :class:`ProxyResponse` into a server response."""
    logger.debug(
        "Converting response with status %d and %d headers",
        response.status, len(response.headers),
    )
    headers = CIMultiDict(
        (name, value)
        for name, value in response.headers.items()
        if name.lower() not in _MANAGED_HEADERS
    )
    try:
        return web.Response(status=response.status, headers=headers, body=response.body)
    except (ValueError, TypeError) as exc:
        error = ProxyError(f"Failed to build response: {exc}")
        logger.error("%s", error)
        raise error from exc


def _internal_error() -> web.Response:
    return web.Response(status=500, body=b"Internal Server Error")


class ProxyServer:
    """Serves the proxy on the configured address until stopped or signalled."""

    def __init__(self, config: ServerConfig, core: ProxyCore) -> None:
        self.config = config
        self.core = core
        self.started = asyncio.Event()
        self._shutdown = asyncio.Event()

    def create_app(self) -> web.Application:
        """An application routing every method and path to :meth:`handle`."""
        app = web.Application(client_max_size=0)
        app.router.add_route("*", "/{tail:.*}", self.handle)
        return app

    async def handle(self, request: web.Request) -> web.Response:
        """Process one request through the core and map the outcome to a response."""
        method, path = request.method, request.path
        client_ip = request.remote or ""
        logger.debug("Received request: %s %s", method, path)

        try:
            proxy_request = await convert_request(request, client_ip)
        except ProxyError as exc:
            logger.error("Failed to convert request %s %s: %s", method, path, exc)
            return _internal_error()

        try:
            result = await self.core.process_request(proxy_request)
        except Exception as exc:
            logger.debug("Request %s %s failed: %s", method, path, exc)
            return convert_proxy_response(error_response(exc))

        logger.debug("Processed request %s %s -> %d", method, path, result.status)
        try:
            return convert_proxy_response(result)
        except ProxyError as exc:
            logger.error("Failed to convert response for %s %s: %s", method, path, exc)
            return _internal_error()

    def stop(self) -> None:
        """Ask a running :meth:`start` to shut down gracefully."""
        self._shutdown.set()

    def _install_signal_handlers(self) -> list[signal.Signals]:
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                continue
            installed.append(sig)
        return installed

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s; initiating graceful shutdown", sig.name)
        self.stop()

    async def start(self) -> None:
        """Listen and serve until :meth:`stop` is called or SIGINT/SIGTERM arrives."""
        try:
            ipaddress.ip_address(self.config.host)
        except ValueError as exc:
            raise ProxyError(f"Invalid server address: {exc}") from exc

        runner = web.AppRunner(self.create_app(), access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self.config.host, self.config.port)
        try:
            await site.start()
        except OSError as exc:
            await runner.cleanup()
            raise ProxyError(f"Failed to bind: {exc}") from exc
        logger.info("Foxy proxy listening on http://%s:%d", self.config.host, self.config.port)

        health: HealthServer | None = HealthServer(self.config.health_port)
        try:
            await health.start()
            health.set_ready()
        except OSError as exc:
            logger.error("Health server bind failed: %s", exc)
            health = None

        installed = self._install_signal_handlers()
        self.started.set()
        try:
            await self._shutdown.wait()
        finally:
            loop = asyncio.get_running_loop()
            for sig in installed:
                loop.remove_signal_handler(sig)
            logger.info("Shutting down; waiting for open connections")
            start_time = time.monotonic()
            try:
                await asyncio.wait_for(runner.cleanup(), SHUTDOWN_TIMEOUT)
                logger.info(
                    "All connections drained gracefully in %.1fs",
                    time.monotonic() - start_time,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Shutdown timed out after %d seconds, some connections may be "
                    "forcefully closed",
                    SHUTDOWN_TIMEOUT,
                )
            if health is not None:
                await health.stop()
            self.started.clear()
            self._shutdown.clear()
            logger.info("Shutdown complete")