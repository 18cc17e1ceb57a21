"""Security providers and the chain that runs them around the main pipeline."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable

from .messages import ProxyError, ProxyRequest, ProxyResponse, SecurityError

logger = logging.getLogger(__name__)


class SecurityStage(Enum):
    """When in the request/response lifecycle a provider runs."""

    PRE = "pre"
    POST = "post"
    BOTH = "both"

    def is_pre(self) -> bool:
        """Whether the provider runs before routing."""
        return self in (SecurityStage.PRE, SecurityStage.BOTH)

    def is_post(self) -> bool:
        """Whether the provider runs after the upstream call."""
        return self in (SecurityStage.POST, SecurityStage.BOTH)


class SecurityProvider(ABC):
    """A unit of security logic such as basic auth, JWT or OIDC."""

    @property
    @abstractmethod
    def stage(self) -> SecurityStage:
        """The phase(s) this provider takes part in."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name shown in logs and error messages."""

    async def pre(self, request: ProxyRequest) -> ProxyRequest:
        """Validate or change the inbound request; the default passes it through."""
        logger.debug("Security provider '%s' skipping pre-auth (default implementation)", self.name)
        return request

    async def post(self, request: ProxyRequest, response: ProxyResponse) -> ProxyResponse:
        """Validate or change the response; the default passes it through."""
        logger.debug("Security provider '%s' skipping post-auth (default implementation)", self.name)
        return response


class SecurityChain:
    """Runs registered providers in order, skipping bypassed path prefixes."""

    def __init__(self, bypass_routes: Iterable[str] | None = None) -> None:
        self.providers: list[SecurityProvider] = []
        self.bypass_routes: list[str] = list(bypass_routes or ())

    def add(self, provider: SecurityProvider) -> None:
        """Append a provider to the chain."""
        self.providers.append(provider)

    def is_bypassed(self, path: str) -> bool:
        """Whether ``path`` starts with one of the bypass prefixes."""
        bypassed = any(path.startswith(prefix) for prefix in self.bypass_routes)
        if bypassed:
            logger.debug("Security bypass for path: %s", path)
        return bypassed

    async def apply_pre(self, request: ProxyRequest) -> ProxyRequest:
        """Run every pre-stage provider; raises :class:`SecurityError` on rejection."""
        if self.is_bypassed(request.path):
            return request
        for provider in self.providers:
            if not provider.stage.is_pre():
                continue
            logger.debug("Running pre-auth provider: %s", provider.name)
            try:
                request = await provider.pre(request)
            except ProxyError as exc:
                error = SecurityError(f"{provider.name}: {exc}")
                logger.error("Security pre-auth failed: %s", error)
                raise error from exc
        return request

    async def apply_post(self, request: ProxyRequest, response: ProxyResponse) -> ProxyResponse:
        """Run every post-stage provider; raises :class:`SecurityError` on rejection."""
        if self.is_bypassed(request.path):
            return response
        for provider in self.providers:
            if not provider.stage.is_post():
                continue
            logger.debug("Running post-auth provider: %s", provider.name)
            try:
                response = await provider.post(request, response)
            except ProxyError as exc:
                error = SecurityError(f"{provider.name}: {exc}")
                logger.error("Security post-auth failed: %s", error)
                raise error from exc
        return response