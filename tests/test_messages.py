import dataclasses

import pytest

from foxy.messages import (
    ClientError,
    HttpMethod,
    ProxyError,
    ProxyRequest,
    ProxyResponse,
    ProxyTimeoutError,
    RequestContext,
    ResponseContext,
    RoutingError,
    SecurityError,
)


@pytest.mark.parametrize("raw", ["get", "GET", " Get ", "gEt"])
def test_parse_method_ignores_case(raw):
    assert HttpMethod.parse(raw) is HttpMethod.GET


def test_parse_method_passes_enum_through():
    assert HttpMethod.parse(HttpMethod.DELETE) is HttpMethod.DELETE


@pytest.mark.parametrize("raw", ["FETCH", "", 42, None])
def test_parse_method_rejects_unknown(raw):
    with pytest.raises(ValueError):
        HttpMethod.parse(raw)


def test_method_str_is_its_name():
    for method in HttpMethod:
        assert str(method) == method.value
        assert HttpMethod.parse(str(method)) is method


def test_request_converts_method_and_headers():
    request = ProxyRequest(method="post", path="/api", headers={"Content-Type": "application/json"})
    assert request.method is HttpMethod.POST
    assert request.headers["content-type"] == "application/json"
    assert request.body == b""
    assert request.query is None


def test_request_headers_keep_duplicates():
    request = ProxyRequest(HttpMethod.GET, "/", headers=[("Accept", "a"), ("accept", "b")])
    assert request.headers.getall("ACCEPT") == ["a", "b"]


def test_request_path_and_query():
    with_query = ProxyRequest(HttpMethod.GET, "/api", query="version=v1")
    without_query = ProxyRequest(HttpMethod.GET, "/api")
    assert with_query.path_and_query == "/api?version=v1"
    assert without_query.path_and_query == "/api"


def test_replace_copies_headers_but_shares_context():
    request = ProxyRequest(HttpMethod.GET, "/a", headers={"x-one": "1"})
    clone = dataclasses.replace(request)
    clone.headers["x-two"] = "2"
    clone.context.attributes["seen"] = True
    assert "x-two" not in request.headers
    assert request.context.attributes == {"seen": True}


def test_request_context_elapsed():
    assert RequestContext().elapsed() is None
    context = RequestContext(client_ip="127.0.0.1", start_time=0.0)
    assert context.elapsed() > 0
    assert context.client_ip == "127.0.0.1"


def test_response_defaults_and_headers():
    response = ProxyResponse(200, headers={"content-type": "application/json"})
    assert response.status == 200
    assert response.headers["Content-Type"] == "application/json"
    assert response.body == b""
    assert response.context == ResponseContext()


@pytest.mark.parametrize("status", [99, 1000, -1, True, "200"])
def test_response_rejects_invalid_status(status):
    with pytest.raises(ValueError):
        ProxyResponse(status)


@pytest.mark.parametrize("error_type", [RoutingError, SecurityError, ClientError])
def test_errors_are_proxy_errors(error_type):
    error = error_type("boom")
    assert isinstance(error, ProxyError)
    assert "boom" in str(error)


def test_timeout_error_keeps_duration():
    error = ProxyTimeoutError(2.5)
    assert error.timeout == 2.5
    assert "2.5" in str(error)
    assert isinstance(error, ProxyError)