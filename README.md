# foxy

Building blocks for a configuration-driven HTTP proxy on asyncio and aiohttp:
predicate routing, a security provider chain, an HTTP front end, a
health/readiness server and OpenTelemetry settings.

## Installation

```
pip install foxy
```

## Modules

- `foxy.messages` has `HttpMethod`, `ProxyRequest`, `ProxyResponse`,
  `RequestContext` and `ResponseContext`. It also has the error hierarchy:
  `ProxyError` with the subclasses `RoutingError`, `SecurityError`,
  `ProxyTimeoutError` and `ClientError`. `HttpMethod.parse` accepts method
  names in any case.
- `foxy.predicates` has the `PathPredicate`, `MethodPredicate`,
  `HeaderPredicate` and `QueryPredicate` classes with their `*Config`
  dataclasses, plus the helpers `pattern_to_regex` and `parse_query_params`.
  - Path patterns support `:name` for one path segment and `*` for anything.
    Other characters match literally.
  - Header and query predicates compare by substring. Set `exact_match=True`
    to require equality.
- `foxy.router` has `RouteConfig`, `PredicateConfig`, `FilterConfig`,
  `Route`, `PredicateFactory` and `PredicateRouter`.
  - Routes are tried from the highest priority down. The first route whose
    predicates all match is returned.
  - If no route matches, `route()` raises `RoutingError`.
- `foxy.security` has `SecurityStage`, the abstract `SecurityProvider` and
  `SecurityChain`.
  - The chain runs each provider whose stage fits.
  - Requests whose path starts with a bypass prefix are passed through
    untouched.
  - A `ProxyError` raised by a provider is re-raised as
    `SecurityError("<provider name>: <message>")`.
- `foxy.server` has `ServerConfig`, `ProxyServer`, `error_response`,
  `convert_request` and `convert_proxy_response`.
- `foxy.health` has `HealthServer`.
- `foxy.telemetry` has `OpenTelemetryConfig`, `TelemetrySettings`,
  `collector_metadata`, `resource_attributes` and `init`.

## Routing

```python
import asyncio

from foxy.messages import HttpMethod, ProxyRequest
from foxy.router import PredicateRouter

routes = [
    {
        "id": "users",
        "target": "http://localhost:9000",
        "priority": 10,
        "predicates": [
            {"type": "path", "config": {"pattern": "/api/users/:id"}},
            {"type": "method", "config": {"methods": ["GET"]}},
        ],
    },
    {"id": "fallback", "target": "http://localhost:9001"},
]


async def main():
    router = PredicateRouter(routes)
    route = await router.route(ProxyRequest(method=HttpMethod.GET, path="/api/users/42"))
    print(route.id, route.target_base_url, route.path_pattern)  # users http://localhost:9000 /api/users/:id


asyncio.run(main())
```

A route with no predicates matches every request. Its `path_pattern` defaults
to `/*`.

You can pass `PredicateRouter(routes, filter_factory=...)` with a callable.
It is called as `filter_factory(type, config)` for each filter entry of a
route. Without a factory, the `FilterConfig` entries themselves are kept in
`Route.filters`.

Routes can also be changed at run time with these async methods:

- `add_route`
- `add_route_with_predicates`
- `remove_route`
- `get_routes`

## Security

```python
from foxy.messages import SecurityError
from foxy.security import SecurityChain, SecurityProvider, SecurityStage


class DenyAll(SecurityProvider):
    name = "deny-all"
    stage = SecurityStage.PRE

    async def pre(self, request):
        raise SecurityError("denied")


chain = SecurityChain(bypass_routes=["/health", "/public/"])
chain.add(DenyAll())
```

For paths that are not bypassed, `await chain.apply_pre(request)` raises
`SecurityError("deny-all: denied")`. For `/health` or `/public/...` it returns
the request unchanged.

## Serving

`ProxyServer(config, core)` serves every method and path on
`ServerConfig.host` and `ServerConfig.port`. The defaults are `127.0.0.1` and
`8080`. `core` is any object with an async `process_request(request)` method
that returns a `ProxyResponse`.

- Call `await server.start()` to run the server. It runs until `server.stop()`
  is called or SIGINT or SIGTERM arrives.
- While it runs, it also starts a `HealthServer` on
  `ServerConfig.health_port` (default `8081`).
- The health server answers `/health` with `OK` and `/ready` with `READY`.
  `/ready` returns 503 `NOT READY` until `set_ready()` has been called.
- `create_app()` returns the aiohttp application, for use in tests or
  another runner.

Errors raised by the core are mapped to responses by `error_response`:

| Error               | Status | Body                            |
|---------------------|--------|---------------------------------|
| `ProxyTimeoutError` | 504    | `Gateway Timeout after <n>s`    |
| `RoutingError`      | 404    | `Route not found`               |
| `SecurityError`     | 403    | `Forbidden`                     |
| `ClientError`       | 502    | `Bad Gateway`                   |
| anything else       | 500    | `Internal Server Error`         |

## Telemetry settings

`OpenTelemetryConfig.from_dict(data)` reads the telemetry settings:

- `endpoint` (default `http://localhost:4317`)
- `service_name` (default `foxy-proxy`)
- `include_headers`
- `include_bodies`
- `max_body_size`
- `span_annotations`
- `collector_headers`
- `resource_attributes`

`init(config)` returns `None` when no endpoint is set. Otherwise it returns a
`TelemetrySettings` with these fields:

- `metadata`: the collector headers, lower-cased, with invalid names or
  values dropped.
- `resource`: the resource attributes, listed below.

The resource attributes are:

- `service.name`
- `service.version`
- `deployment.environment`, from `FOXY_DEPLOY_ENV`, default `local`
- `service.instance.id`, the host name

Configured `resource_attributes` are applied after these.

## What this package does not do

- There is no upstream HTTP client or request-processing core. You supply the
  object passed to `ProxyServer` as `core`, and it does the forwarding.
- There are no built-in request/response filters and no built-in security
  providers.
- There is no configuration-file loader and no command-line program.
- `foxy.telemetry` only computes exporter and resource settings. It does not
  create spans or send traces to a collector.

## Running the tests

```
pip install -e ".[test]"
pytest
```