import pytest

from foxy.messages import HttpMethod, ProxyRequest, ProxyResponse, SecurityError
from foxy.security import SecurityChain, SecurityProvider, SecurityStage


def _request(method, path, headers=None):
    return ProxyRequest(method=method, path=path, headers=headers)


class MockSecurityProvider(SecurityProvider):
    stage = SecurityStage.BOTH
    name = "mock-provider"

    async def pre(self, request):
        raise SecurityError("Mock authentication failure")


class TaggingProvider(SecurityProvider):
    name = "tagger"

    def __init__(self, stage, tag):
        self._stage = stage
        self.tag = tag

    @property
    def stage(self):
        return self._stage

    async def pre(self, request):
        request.headers.add("x-tag", self.tag)
        return request

    async def post(self, request, response):
        response.headers.add("x-tag", self.tag)
        return response


class RejectingPostProvider(SecurityProvider):
    stage = SecurityStage.POST
    name = "post-guard"

    async def post(self, request, response):
        raise SecurityError("denied")


class PassThroughProvider(SecurityProvider):
    stage = SecurityStage.BOTH
    name = "pass"


@pytest.mark.asyncio
async def test_security_chain_bypass_routes():
    chain = SecurityChain(["/health", "/public/"])
    chain.add(MockSecurityProvider())

    request = _request(HttpMethod.GET, "/health")
    assert await chain.apply_pre(request) is request

    request = _request(HttpMethod.POST, "/health")
    assert await chain.apply_pre(request) is request

    request = _request(HttpMethod.GET, "/public/docs")
    assert await chain.apply_pre(request) is request

    with pytest.raises(SecurityError):
        await chain.apply_pre(_request(HttpMethod.GET, "/api/users"))


@pytest.mark.asyncio
async def test_pre_error_names_provider():
    chain = SecurityChain()
    chain.add(MockSecurityProvider())
    with pytest.raises(SecurityError) as info:
        await chain.apply_pre(_request(HttpMethod.GET, "/api"))
    assert str(info.value) == "mock-provider: Mock authentication failure"


def test_stage_flags():
    assert SecurityStage.PRE.is_pre() and not SecurityStage.PRE.is_post()
    assert SecurityStage.POST.is_post() and not SecurityStage.POST.is_pre()
    assert SecurityStage.BOTH.is_pre() and SecurityStage.BOTH.is_post()


@pytest.mark.asyncio
async def test_providers_run_in_order_and_by_stage():
    chain = SecurityChain()
    chain.add(TaggingProvider(SecurityStage.PRE, "one"))
    chain.add(TaggingProvider(SecurityStage.POST, "two"))
    chain.add(TaggingProvider(SecurityStage.BOTH, "three"))

    request = await chain.apply_pre(_request(HttpMethod.GET, "/api"))
    assert request.headers.getall("x-tag") == ["one", "three"]

    response = await chain.apply_post(request, ProxyResponse(status=200))
    assert response.headers.getall("x-tag") == ["two", "three"]


@pytest.mark.asyncio
async def test_post_rejection_and_bypass():
    chain = SecurityChain(["/open"])
    chain.add(RejectingPostProvider())

    with pytest.raises(SecurityError) as info:
        await chain.apply_post(_request(HttpMethod.GET, "/api"), ProxyResponse(status=200))
    assert str(info.value) == "post-guard: denied"

    response = ProxyResponse(status=200)
    assert await chain.apply_post(_request(HttpMethod.GET, "/open/x"), response) is response


@pytest.mark.asyncio
async def test_post_only_provider_skipped_before_routing():
    chain = SecurityChain()
    chain.add(RejectingPostProvider())
    request = _request(HttpMethod.GET, "/api")
    assert await chain.apply_pre(request) is request


@pytest.mark.asyncio
async def test_default_hooks_pass_through():
    chain = SecurityChain()
    chain.add(PassThroughProvider())
    request = _request(HttpMethod.GET, "/api")
    response = ProxyResponse(status=204)
    assert await chain.apply_pre(request) is request
    assert await chain.apply_post(request, response) is response


def test_is_bypassed_uses_prefixes():
    chain = SecurityChain(["/health"])
    assert chain.is_bypassed("/healthz")
    assert not chain.is_bypassed("/api/health")