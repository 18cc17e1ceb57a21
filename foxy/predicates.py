"""Request predicates used by the router to pick a route."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from .messages import HttpMethod, ProxyRequest, RoutingError

_REGEX_SPECIALS = frozenset(".^$|+?()[]{}\\")


def pattern_to_regex(pattern: str) -> str:
    """Translate a route path pattern into an anchored regular expression.

    ``:name`` becomes a single path segment, ``*`` matches anything, and
    regex metacharacters are escaped.
    """
    parts = ["^"]
    position = 0
    length = len(pattern)
    while position < length:
        char = pattern[position]
        position += 1
        if char == ":":
            while position < length and (pattern[position].isalnum() or pattern[position] == "_"):
                position += 1
            parts.append("([^/]+)")
        elif char == "*":
            parts.append("(.*)")
        elif char in _REGEX_SPECIALS:
            parts.append("\\" + char)
        else:
            parts.append(char)
    parts.append("$")
    return "".join(parts)


def parse_query_params(query: str) -> dict[str, str]:
    """Split ``a=1&b=2`` into a mapping; pairs without ``=`` are skipped."""
    params: dict[str, str] = {}
    for pair in query.split("&"):
        pieces = pair.split("=")
        if len(pieces) >= 2:
            params[pieces[0]] = pieces[1]
    return params


def _require_mapping(data: Any, kind: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"{kind} predicate config must be a mapping")
    return data


def _string_map(data: dict[str, Any], key: str) -> dict[str, str]:
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    value = data[key]
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise ValueError(f"`{key}` must be a mapping of strings to strings")
    return dict(value)


def _exact_match(data: dict[str, Any]) -> bool:
    value = data.get("exact_match", False)
    if not isinstance(value, bool):
        raise ValueError("`exact_match` must be a boolean")
    return value


def _value_matches(actual: str, expected: str, exact: bool) -> bool:
    return actual == expected if exact else expected in actual


def _is_visible_header_text(value: str) -> bool:
    return all(c == "\t" or " " <= c <= "~" for c in value)


class Predicate(ABC):
    """A condition a request must satisfy for a route to be chosen."""

    predicate_type: ClassVar[str] = ""

    @abstractmethod
    async def matches(self, request: ProxyRequest) -> bool:
        """Return whether ``request`` satisfies this predicate."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({getattr(self, 'config', None)!r})"


@dataclass
class PathPredicateConfig:
    """Settings of a path predicate."""

    pattern: str

    @classmethod
    def from_dict(cls, data: Any) -> PathPredicateConfig:
        """Build from a mapping with a ``pattern`` string."""
        data = _require_mapping(data, "path")
        if "pattern" not in data:
            raise ValueError("missing field `pattern`")
        if not isinstance(data["pattern"], str):
            raise ValueError("`pattern` must be a string")
        return cls(pattern=data["pattern"])


class PathPredicate(Predicate):
    """Matches the request path against a route pattern."""

    predicate_type = "path"

    def __init__(self, config: PathPredicateConfig) -> None:
        self.config = config
        regex = pattern_to_regex(config.pattern)
        try:
            self._regex = re.compile(regex)
        except re.error as exc:
            raise RoutingError(
                f"Invalid path predicate regex pattern '{config.pattern}': {exc}"
            ) from exc

    @property
    def regex(self) -> str:
        """The compiled regular expression's source."""
        return self._regex.pattern

    async def matches(self, request: ProxyRequest) -> bool:
        return self._regex.fullmatch(request.path) is not None


@dataclass
class MethodPredicateConfig:
    """Settings of a method predicate."""

    methods: list[HttpMethod] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.methods = [HttpMethod.parse(m) for m in self.methods]

    @classmethod
    def from_dict(cls, data: Any) -> MethodPredicateConfig:
        """Build from a mapping with a ``methods`` list."""
        data = _require_mapping(data, "method")
        if "methods" not in data:
            raise ValueError("missing field `methods`")
        methods = data["methods"]
        if not isinstance(methods, list):
            raise ValueError("`methods` must be a list")
        return cls(methods=methods)


class MethodPredicate(Predicate):
    """Matches when the request method is one of the configured methods."""

    predicate_type = "method"

    def __init__(self, config: MethodPredicateConfig) -> None:
        self.config = config

    async def matches(self, request: ProxyRequest) -> bool:
        return request.method in self.config.methods


@dataclass
class HeaderPredicateConfig:
    """Settings of a header predicate."""

    headers: dict[str, str] = field(default_factory=dict)
    exact_match: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> HeaderPredicateConfig:
        """Build from a mapping with ``headers`` and optional ``exact_match``."""
        data = _require_mapping(data, "header")
        return cls(headers=_string_map(data, "headers"), exact_match=_exact_match(data))


class HeaderPredicate(Predicate):
    """Matches when every configured header is present with a fitting value."""

    predicate_type = "header"

    def __init__(self, config: HeaderPredicateConfig) -> None:
        self.config = config

    async def matches(self, request: ProxyRequest) -> bool:
        for name, expected in self.config.headers.items():
            actual = request.headers.get(name)
            if actual is None or not isinstance(actual, str):
                return False
            if not _is_visible_header_text(actual):
                return False
            if not _value_matches(actual, expected, self.config.exact_match):
                return False
        return True


@dataclass
class QueryPredicateConfig:
    """Settings of a query-parameter predicate."""

    params: dict[str, str] = field(default_factory=dict)
    exact_match: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> QueryPredicateConfig:
        """Build from a mapping with ``params`` and optional ``exact_match``."""
        data = _require_mapping(data, "query")
        return cls(params=_string_map(data, "params"), exact_match=_exact_match(data))


class QueryPredicate(Predicate):
    """Matches when every configured query parameter is present with a fitting value."""

    predicate_type = "query"

    def __init__(self, config: QueryPredicateConfig) -> None:
        self.config = config

    async def matches(self, request: ProxyRequest) -> bool:
        if not self.config.params:
            return True
        if request.query is None:
            return False
        params = parse_query_params(request.query)
        for name, expected in self.config.params.items():
            actual = params.get(name)
            if actual is None:
                return False
            if not _value_matches(actual, expected, self.config.exact_match):
                return False
        return True