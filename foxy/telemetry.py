"""OpenTelemetry configuration and collector/resource setup."""

from __future__ import annotations

import json
import os
import socket
from dataclasses import dataclass, field, fields
from typing import Any

SERVICE_VERSION = "0.2.16"
DEPLOY_ENV_VARIABLE = "FOXY_DEPLOY_ENV"

_TOKEN_CHARS = frozenset(
    "!#$%&'*+-.^_`|~0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
)


class TelemetryInitError(Exception):
    """OpenTelemetry could not be configured."""


def _format_map(mapping: dict[str, str]) -> str:
    items = ", ".join(f"{json.dumps(k)}: {json.dumps(v)}" for k, v in mapping.items())
    return "{" + items + "}"


def _string_map(name: str, value: Any) -> dict[str, str]:
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise TelemetryInitError(f"{name} must be a mapping of strings to strings")
    return dict(value)


@dataclass
class OpenTelemetryConfig:
    """Settings for exporting traces to an OpenTelemetry collector."""

    endpoint: str = "http://localhost:4317"
    service_name: str = "foxy-proxy"
    include_headers: bool = True
    include_bodies: bool = False
    max_body_size: int = 1024
    span_annotations: dict[str, str] = field(default_factory=dict)
    collector_headers: dict[str, str] = field(default_factory=dict)
    resource_attributes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> OpenTelemetryConfig:
        """Build a config from a mapping; missing keys take defaults, unknown keys are ignored."""
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise TelemetryInitError("opentelemetry configuration must be a mapping")
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}

        for name in ("endpoint", "service_name"):
            if name in values and not isinstance(values[name], str):
                raise TelemetryInitError(f"{name} must be a string")
        for name in ("include_headers", "include_bodies"):
            if name in values and not isinstance(values[name], bool):
                raise TelemetryInitError(f"{name} must be a boolean")
        if "max_body_size" in values:
            size = values["max_body_size"]
            if isinstance(size, bool) or not isinstance(size, int) or size < 0:
                raise TelemetryInitError("max_body_size must be a non-negative integer")
        for name in ("span_annotations", "collector_headers", "resource_attributes"):
            if name in values:
                values[name] = _string_map(name, values[name])
        return cls(**values)

    def __str__(self) -> str:
        return (
            f"OpenTelemetryConfig {{ endpoint: {self.endpoint}, "
            f"service_name: {self.service_name}, "
            f"include_headers: {str(self.include_headers).lower()}, "
            f"include_bodies: {str(self.include_bodies).lower()}, "
            f"max_body_size: {self.max_body_size}, "
            f"span_annotations: {_format_map(self.span_annotations)}, "
            f"collector_headers: {_format_map(self.collector_headers)}, "
            f"resource_attributes: {_format_map(self.resource_attributes)} }}"
        )


@dataclass(frozen=True)
class TelemetrySettings:
    """The exporter and resource setup produced by :func:`init`."""

    endpoint: str
    service_name: str
    metadata: dict[str, str]
    resource: dict[str, str]


def _valid_metadata_key(key: str) -> bool:
    return bool(key) and all(c in _TOKEN_CHARS for c in key) and not key.lower().endswith("-bin")


def _valid_metadata_value(value: str) -> bool:
    return all(c == "\t" or " " <= c <= "~" for c in value)


def collector_metadata(config: OpenTelemetryConfig) -> dict[str, str]:
    """Collector request headers, lower-cased; invalid names or values are dropped."""
    return {
        key.lower(): value
        for key, value in config.collector_headers.items()
        if _valid_metadata_key(key) and _valid_metadata_value(value)
    }


def _instance_id() -> str:
    try:
        return socket.gethostname() or "unknown-host"
    except OSError:
        return "unknown-host"


def resource_attributes(config: OpenTelemetryConfig) -> dict[str, str]:
    """Resource attributes for every span, with configured ones applied last."""
    attributes = {
        "service.name": config.service_name,
        "service.version": SERVICE_VERSION,
        "deployment.environment": os.environ.get(DEPLOY_ENV_VARIABLE, "local"),
        "service.instance.id": _instance_id(),
    }
    attributes.update(config.resource_attributes)
    return attributes


def init(config: OpenTelemetryConfig | None) -> TelemetrySettings | None:
    """Prepare tracing export; returns ``None`` when no endpoint is configured."""
    if config is None or not config.endpoint:
        return None
    if not isinstance(config, OpenTelemetryConfig):
        raise TelemetryInitError("init expects an OpenTelemetryConfig")
    return TelemetrySettings(
        endpoint=config.endpoint,
        service_name=config.service_name,
        metadata=collector_metadata(config),
        resource=resource_attributes(config),
    )