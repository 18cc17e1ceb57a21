"""Liveness and readiness endpoints served on their own port."""

from __future__ import annotations

import logging

from aiohttp import web

logger = logging.getLogger(__name__)


class HealthServer:
    """Answers ``/health`` always and ``/ready`` once :meth:`set_ready` was called."""

    def __init__(self, port: int, host: str = "0.0.0.0") -> None:
        self.port = port
        self.host = host
        self._ready = False
        self._runner: web.AppRunner | None = None

    @property
    def is_ready(self) -> bool:
        """Whether readiness has been signalled."""
        return self._ready

    def set_ready(self) -> None:
        """Mark the service as ready to take traffic."""
        self._ready = True

    async def _handle(self, request: web.Request) -> web.Response:
        if request.path == "/health":
            return web.Response(text="OK")
        if request.path == "/ready":
            if self._ready:
                return web.Response(text="READY")
            return web.Response(status=503, text="NOT READY")
        return web.Response(status=404, text="Not Found")

    def create_app(self) -> web.Application:
        """An application that serves the health endpoints on every path."""
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self._handle)
        return app

    async def start(self) -> None:
        """Bind the listening socket and begin serving."""
        if self._runner is not None:
            return
        runner = web.AppRunner(self.create_app(), access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        logger.debug("Health server listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Stop serving and release the socket."""
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()