"""Predicate-based routing: picks the first route whose predicates all match."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from .messages import ProxyRequest, RoutingError
from .predicates import (
    HeaderPredicate,
    HeaderPredicateConfig,
    MethodPredicate,
    MethodPredicateConfig,
    PathPredicate,
    PathPredicateConfig,
    Predicate,
    QueryPredicate,
    QueryPredicateConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_PATH_PATTERN = "/*"

FilterFactoryFn = Callable[[str, Any], Any]


def _require_mapping(data: Any, kind: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"{kind} config must be a mapping")
    return data


def _require_str(data: dict[str, Any], key: str) -> str:
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    value = data[key]
    if not isinstance(value, str):
        raise ValueError(f"`{key}` must be a string")
    return value


def _optional_list(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key, [])
    if not isinstance(value, list):
        raise ValueError(f"`{key}` must be a list")
    return value


@dataclass
class FilterConfig:
    """A filter entry of a route: its type and raw configuration."""

    type: str
    config: Any

    @classmethod
    def from_dict(cls, data: Any) -> FilterConfig:
        """Build from a mapping with ``type`` and ``config`` keys."""
        data = _require_mapping(data, "filter")
        filter_type = _require_str(data, "type")
        if "config" not in data:
            raise ValueError("missing field `config`")
        return cls(type=filter_type, config=data["config"])


@dataclass
class PredicateConfig:
    """A predicate entry of a route: its type and raw configuration."""

    type: str
    config: Any

    @classmethod
    def from_dict(cls, data: Any) -> PredicateConfig:
        """Build from a mapping with ``type_`` (or ``type``) and ``config`` keys."""
        data = _require_mapping(data, "predicate")
        key = "type_" if "type_" in data else "type"
        if key not in data:
            raise ValueError("missing field `type_`")
        predicate_type = _require_str(data, key)
        if "config" not in data:
            raise ValueError("missing field `config`")
        return cls(type=predicate_type, config=data["config"])


@dataclass
class RouteConfig:
    """Configuration of one route."""

    id: str
    target: str
    filters: list[FilterConfig] = field(default_factory=list)
    priority: int = 0
    predicates: list[PredicateConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> RouteConfig:
        """Build from a mapping; ``filters``, ``priority`` and ``predicates`` are optional."""
        data = _require_mapping(data, "route")
        priority = data.get("priority", 0)
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise ValueError("`priority` must be an integer")
        return cls(
            id=_require_str(data, "id"),
            target=_require_str(data, "target"),
            filters=[FilterConfig.from_dict(f) for f in _optional_list(data, "filters")],
            priority=priority,
            predicates=[PredicateConfig.from_dict(p) for p in _optional_list(data, "predicates")],
        )


@dataclass
class Route:
    """A resolved route: where to send the request and which filters to run."""

    id: str
    target_base_url: str
    path_pattern: str = DEFAULT_PATH_PATTERN
    filters: list[Any] | None = None


@dataclass
class _RouteEntry:
    route: Route
    predicates: tuple[Predicate, ...]
    priority: int


class PredicateFactory:
    """Builds predicates from their type name and raw configuration."""

    _KINDS: dict[str, tuple[Any, Any]] = {
        "path": (PathPredicateConfig, PathPredicate),
        "method": (MethodPredicateConfig, MethodPredicate),
        "header": (HeaderPredicateConfig, HeaderPredicate),
        "query": (QueryPredicateConfig, QueryPredicate),
    }

    @classmethod
    def create_predicate(cls, predicate_type: str, config: Any) -> Predicate:
        """Create the predicate named ``predicate_type``; raises :class:`RoutingError`."""
        logger.debug("Creating predicate of type '%s' with config: %r", predicate_type, config)
        kind = cls._KINDS.get(predicate_type)
        if kind is None:
            error = RoutingError(f"Unknown predicate type: {predicate_type}")
            logger.error("%s", error)
            raise error
        config_cls, predicate_cls = kind
        try:
            parsed = config_cls.from_dict(config)
        except ValueError as exc:
            error = RoutingError(f"Invalid {predicate_type} predicate config: {exc}")
            logger.error("%s", error)
            raise error from exc
        return predicate_cls(parsed)


def _path_pattern(predicates: Iterable[PredicateConfig]) -> str:
    for predicate in predicates:
        if predicate.type == "path":
            config = predicate.config
            pattern = config.get("pattern") if isinstance(config, dict) else None
            return pattern if isinstance(pattern, str) else DEFAULT_PATH_PATTERN
    return DEFAULT_PATH_PATTERN


class PredicateRouter:
    """Holds routes ordered by priority and resolves requests against them.

    Filters named in route configurations are built with ``filter_factory``
    (called as ``filter_factory(type, config)``); without one the
    :class:`FilterConfig` entries themselves are kept on the route.
    """

    def __init__(
        self,
        routes: Iterable[RouteConfig | dict[str, Any]] | None = None,
        filter_factory: FilterFactoryFn | None = None,
    ) -> None:
        self._routes: dict[str, _RouteEntry] = {}
        self._sorted: list[_RouteEntry] = []
        self._filter_factory = filter_factory
        for raw in routes or ():
            self._load(raw)

    def _load(self, raw: RouteConfig | dict[str, Any]) -> None:
        if isinstance(raw, RouteConfig):
            config = raw
        else:
            try:
                config = RouteConfig.from_dict(raw)
            except ValueError as exc:
                raise RoutingError(f"Invalid route config: {exc}") from exc

        predicates = [
            PredicateFactory.create_predicate(p.type, p.config) for p in config.predicates
        ]
        filters = [self._build_filter(f) for f in config.filters]
        route = Route(
            id=config.id,
            target_base_url=config.target,
            path_pattern=_path_pattern(config.predicates),
            filters=filters or None,
        )
        self._insert(route, predicates, config.priority)

    def _build_filter(self, config: FilterConfig) -> Any:
        if self._filter_factory is None:
            return config
        return self._filter_factory(config.type, config.config)

    def _insert(self, route: Route, predicates: Iterable[Predicate], priority: int) -> None:
        entry = _RouteEntry(route=route, predicates=tuple(predicates), priority=priority)
        self._routes[route.id] = entry
        self._sorted.append(entry)
        self._sorted.sort(key=lambda e: -e.priority)

    async def route(self, request: ProxyRequest) -> Route:
        """Return the highest-priority route whose predicates all match."""
        logger.debug(
            "Routing request %s %s against %d routes",
            request.method, request.path, len(self._sorted),
        )
        for entry in list(self._sorted):
            for predicate in entry.predicates:
                matched = await predicate.matches(request)
                logger.debug(
                    "  Predicate '%s' for route '%s': %s",
                    predicate.predicate_type, entry.route.id,
                    "match" if matched else "no match",
                )
                if not matched:
                    break
            else:
                logger.debug(
                    "Route '%s' matched request %s %s",
                    entry.route.id, request.method, request.path,
                )
                return entry.route

        error = RoutingError(f"No route matched the request: {request.method} {request.path}")
        logger.warning("%s", error)
        raise error

    async def get_routes(self) -> list[Route]:
        """All registered routes, one per id."""
        return [entry.route for entry in self._routes.values()]

    async def add_route(self, route: Route) -> None:
        """Add a route that matches every request, at priority 0."""
        await self.add_route_with_predicates(route, [], 0)

    async def add_route_with_predicates(
        self, route: Route, predicates: Iterable[Predicate], priority: int
    ) -> None:
        """Add a route guarded by ``predicates`` at the given priority."""
        self._insert(route, predicates, priority)

    async def remove_route(self, route_id: str) -> None:
        """Remove the route with ``route_id``; raises :class:`RoutingError` if unknown."""
        if self._routes.pop(route_id, None) is None:
            raise RoutingError(f"Route not found: {route_id}")
        self._sorted = [e for e in self._sorted if e.route.id != route_id]