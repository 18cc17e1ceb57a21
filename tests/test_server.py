import asyncio
import socket

import aiohttp
import pytest
from aiohttp import test_utils

from foxy.messages import (
    ClientError,
    HttpMethod,
    ProxyError,
    ProxyResponse,
    ProxyTimeoutError,
    RoutingError,
    SecurityError,
)
from foxy.server import (
    ProxyServer,
    ServerConfig,
    convert_proxy_response,
    error_response,
)


def _free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class RecordingCore:
    def __init__(self, response=None, error=None):
        self.response = response or ProxyResponse(status=200, body=b"ok")
        self.error = error
        self.requests = []

    async def process_request(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


def test_server_config_defaults():
    config = ServerConfig.from_dict({})
    assert config == ServerConfig(host="127.0.0.1", port=8080, health_port=8081)


def test_server_config_overrides_and_validation():
    config = ServerConfig.from_dict({"host": "0.0.0.0", "port": 9000})
    assert (config.host, config.port, config.health_port) == ("0.0.0.0", 9000, 8081)
    with pytest.raises(ValueError):
        ServerConfig.from_dict({"port": 70000})
    with pytest.raises(ValueError):
        ServerConfig.from_dict({"host": 5})


def test_convert_proxy_response_keeps_status_and_headers():
    response = ProxyResponse(
        status=200,
        headers={"content-type": "application/json"},
        body=b'{"result":"success"}',
    )
    converted = convert_proxy_response(response)
    assert converted.status == 200
    assert "content-type" in converted.headers
    assert converted.headers["content-type"] == "application/json"
    assert converted.body == b'{"result":"success"}'


@pytest.mark.parametrize(
    "error, status, body",
    [
        (ProxyTimeoutError(30), 504, b"Gateway Timeout after 30s"),
        (RoutingError("none"), 404, b"Route not found"),
        (SecurityError("denied"), 403, b"Forbidden"),
        (ClientError("upstream"), 502, b"Bad Gateway"),
        (ProxyError("boom"), 500, b"Internal Server Error"),
    ],
)
def test_error_response_mapping(error, status, body):
    response = error_response(error)
    assert response.status == status
    assert response.body == body


@pytest.mark.asyncio
async def test_handle_forwards_request_fields():
    core = RecordingCore(
        response=ProxyResponse(status=201, headers={"x-upstream": "yes"}, body=b"created")
    )
    server = ProxyServer(ServerConfig(), core)
    async with test_utils.TestClient(test_utils.TestServer(server.create_app())) as client:
        resp = await client.post(
            "/api/users?version=v1", data=b"hello", headers={"X-Request-Id": "abc"}
        )
        assert resp.status == 201
        assert resp.headers["x-upstream"] == "yes"
        assert await resp.read() == b"created"

    [request] = core.requests
    assert request.method is HttpMethod.POST
    assert request.path == "/api/users"
    assert request.query == "version=v1"
    assert request.headers["x-request-id"] == "abc"
    assert request.body == b"hello"
    assert request.context.client_ip == "127.0.0.1"


@pytest.mark.asyncio
async def test_handle_without_query_gives_none():
    core = RecordingCore()
    server = ProxyServer(ServerConfig(), core)
    async with test_utils.TestClient(test_utils.TestServer(server.create_app())) as client:
        resp = await client.get("/plain")
        assert await resp.read() == b"ok"
    assert core.requests[0].query is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, status, text",
    [
        (RoutingError("no route"), 404, "Route not found"),
        (SecurityError("nope"), 403, "Forbidden"),
        (ClientError("down"), 502, "Bad Gateway"),
        (RuntimeError("unexpected"), 500, "Internal Server Error"),
    ],
)
async def test_handle_maps_core_errors(error, status, text):
    server = ProxyServer(ServerConfig(), RecordingCore(error=error))
    async with test_utils.TestClient(test_utils.TestServer(server.create_app())) as client:
        resp = await client.get("/anything")
        assert resp.status == status
        assert await resp.text() == text


@pytest.mark.asyncio
async def test_handle_rejects_unknown_method():
    core = RecordingCore()
    server = ProxyServer(ServerConfig(), core)
    async with test_utils.TestClient(test_utils.TestServer(server.create_app())) as client:
        resp = await client.request("FROB", "/x")
        assert resp.status == 500
        assert await resp.text() == "Internal Server Error"
    assert core.requests == []


@pytest.mark.asyncio
async def test_start_rejects_invalid_address():
    server = ProxyServer(ServerConfig(host="not an address"), RecordingCore())
    with pytest.raises(ProxyError, match="Invalid server address"):
        await server.start()


@pytest.mark.asyncio
async def test_start_serves_until_stopped():
    port, health_port = _free_port(), _free_port()
    server = ProxyServer(
        ServerConfig(host="127.0.0.1", port=port, health_port=health_port), RecordingCore()
    )
    task = asyncio.create_task(server.start())
    await asyncio.wait_for(server.started.wait(), 5)

    async with aiohttp.ClientSession() as session:
        async with session.get(f"http://127.0.0.1:{port}/x") as resp:
            assert resp.status == 200
            assert await resp.read() == b"ok"
        async with session.get(f"http://127.0.0.1:{health_port}/ready") as resp:
            assert resp.status == 200
            assert await resp.text() == "READY"

    server.stop()
    await asyncio.wait_for(task, 10)
    assert task.exception() is None
    assert not server.started.is_set()