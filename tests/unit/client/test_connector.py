import json

import httpx
import pytest

from request_shield.client.auth import BearerAuth
from request_shield.client.connector import Connector
from request_shield.exceptions import (
    CircuitOpenError,
    ClientHttpFailure,
    RateLimitExceeded,
    RetryExhausted,
    ServerHttpFailure,
    StrayRequestError,
)
from request_shield.middleware.builtin import HeaderMiddleware
from request_shield.transport.httpx_transport import HttpxTransport
from request_shield.types.policy import (
    CacheSettings,
    CircuitBreakerSettings,
    IdempotencySettings,
    InvalidatesCache,
    RateLimitSettings,
    RequestPolicy,
    RetrySettings,
    ThrowOnError,
)
from request_shield.types.request import Request


class FakeApi:
    """httpx MockTransport handler with scripted statuses per path."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.statuses: dict[str, list[int]] = {}
        self.failures: dict[str, int] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if self.failures.get(path):
            self.failures[path] -= 1
            raise httpx.ConnectError("connection refused", request=request)
        scripted = self.statuses.get(path)
        status = scripted.pop(0) if scripted else 200
        return httpx.Response(
            status,
            json={"path": path, "call": len(self.requests)},
            headers={"X-RateLimit-Remaining": "99"},
        )

    def calls_to(self, path):
        return [r for r in self.requests if r.url.path == path]


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def connector(api, clock, sleep, metrics):
    transport = HttpxTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(api)))
    return Connector(
        "https://api.test/v1",
        transport,
        name="api",
        clock=clock,
        sleep=sleep,
        metrics=metrics,
        default_headers={"User-Agent": "request-shield-tests"},
    )


class TestSend:
    @pytest.mark.asyncio
    async def test_get(self, connector, api):
        response = await connector.get("/users", query={"page": 2})

        assert response.status == 200
        assert response.json("path") == "/v1/users"
        assert response.header("x-ratelimit-remaining") == "99"
        assert response.request.endpoint == "/users"
        sent = api.requests[0]
        assert str(sent.url) == "https://api.test/v1/users?page=2"
        assert sent.headers["User-Agent"] == "request-shield-tests"
        assert sent.headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_post_json_body(self, connector, api):
        await connector.post("/users", {"name": "Ada"})
        sent = api.requests[0]
        assert sent.method == "POST"
        assert sent.headers["Content-Type"] == "application/json"
        assert json.loads(sent.content) == {"name": "Ada"}

    @pytest.mark.asyncio
    async def test_put_patch_delete(self, connector, api):
        await connector.put("/users/1", {"a": 1})
        await connector.patch("/users/1", {"a": 2})
        await connector.delete("/users/1")
        assert [r.method for r in api.requests] == ["PUT", "PATCH", "DELETE"]

    @pytest.mark.asyncio
    async def test_authenticator(self, api, clock):
        transport = HttpxTransport(
            client=httpx.AsyncClient(transport=httpx.MockTransport(api))
        )
        connector = Connector(
            "https://api.test", transport, authenticator=BearerAuth("tok"), clock=clock
        )
        await connector.get("/me")
        assert api.requests[0].headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_user_middleware_runs_outside_resilience(self, connector, api):
        connector.middleware.push(HeaderMiddleware({"X-Version": "2"}))
        await connector.get("/users")
        assert api.requests[0].headers["X-Version"] == "2"

    def test_name_defaults_to_class(self, clock):
        class GitHub(Connector):
            pass

        assert GitHub("https://api.github.com", clock=clock).name == "GitHub"

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            Connector("https://api.test", concurrency_limit=0)


class TestThrowOnError:
    @pytest.mark.asyncio
    async def test_failed_response_returned_by_default(self, connector, api):
        api.statuses["/v1/missing"] = [404]
        response = await connector.get("/missing")
        assert response.status == 404
        assert response.failed

    @pytest.mark.asyncio
    async def test_connector_policy(self, api, clock):
        transport = HttpxTransport(
            client=httpx.AsyncClient(transport=httpx.MockTransport(api))
        )
        connector = Connector("https://api.test", transport, throw_on_error=True, clock=clock)
        api.statuses["/missing"] = [404]
        api.statuses["/broken"] = [500]

        with pytest.raises(ClientHttpFailure) as exc_info:
            await connector.get("/missing")
        assert exc_info.value.status == 404
        assert exc_info.value.response.status == 404

        with pytest.raises(ServerHttpFailure):
            await connector.get("/broken")

    @pytest.mark.asyncio
    async def test_request_policy_wins(self, connector, api):
        api.statuses["/v1/missing"] = [404, 404]
        server_only = RequestPolicy(throw_on_error=ThrowOnError(client_errors=False))
        response = await connector.get("/missing", policy=server_only)
        assert response.status == 404

        strict = RequestPolicy(throw_on_error=ThrowOnError())
        with pytest.raises(ClientHttpFailure):
            await connector.get("/missing", policy=strict)

    @pytest.mark.asyncio
    async def test_remote_429_becomes_rate_limit_exceeded(self, connector, api):
        api.statuses["/v1/limited"] = [429]
        with pytest.raises(RateLimitExceeded) as exc_info:
            await connector.get("/limited", policy=RequestPolicy(throw_on_error=ThrowOnError()))
        assert exc_info.value.is_server_side


class TestStrayRequests:
    @pytest.mark.asyncio
    async def test_stray_requests_refused(self, api, clock):
        transport = HttpxTransport(
            client=httpx.AsyncClient(transport=httpx.MockTransport(api))
        )
        connector = Connector(
            "https://api.test", transport, prevent_stray_requests=True, clock=clock
        )
        with pytest.raises(StrayRequestError) as exc_info:
            await connector.get("/users")
        assert exc_info.value.request.endpoint == "/users"
        assert api.requests == []


class TestResilienceIntegration:
    @pytest.mark.asyncio
    async def test_cache_hit_skips_network(self, connector, api):
        policy = RequestPolicy(cache=CacheSettings(ttl=60, tags=("users",)))
        first = await connector.get("/users", policy=policy)
        second = await connector.get("/users", policy=policy)

        assert len(api.requests) == 1
        assert second.from_cache is True
        assert second.json() == first.json()

    @pytest.mark.asyncio
    async def test_cache_management(self, connector, api):
        policy = RequestPolicy(cache=CacheSettings(ttl=60, tags=("users",)))
        request = Request("GET", "/users", policy=policy)
        await connector.send(request)

        assert await connector.forget_cache(request) is True
        await connector.send(request)
        assert await connector.invalidate_cache_tags(["users"]) == 1
        await connector.send(request)
        assert await connector.flush_cache() is True
        await connector.send(request)
        assert len(api.requests) == 4

    @pytest.mark.asyncio
    async def test_mutation_invalidates(self, connector, api):
        cached = RequestPolicy(cache=CacheSettings(ttl=60, tags=("users",)))
        await connector.get("/users", policy=cached)
        await connector.post(
            "/users",
            {"name": "Ada"},
            policy=RequestPolicy(invalidates=InvalidatesCache(tags=("users",))),
        )
        await connector.get("/users", policy=cached)
        assert len(api.calls_to("/v1/users")) == 3

    @pytest.mark.asyncio
    async def test_rate_limit(self, connector, api):
        policy = RequestPolicy(rate_limit=RateLimitSettings(requests=2, per_seconds=60))
        await connector.get("/items", policy=policy)
        await connector.get("/items", policy=policy)
        with pytest.raises(RateLimitExceeded) as exc_info:
            await connector.get("/items", policy=policy)

        assert exc_info.value.is_client_side
        assert len(api.requests) == 2
        state = await connector.rate_limit_state(Request("GET", "/items", policy=policy))
        assert state.remaining == 0

    @pytest.mark.asyncio
    async def test_cache_hit_costs_no_rate_limit(self, connector, api):
        policy = RequestPolicy(
            cache=CacheSettings(ttl=60),
            rate_limit=RateLimitSettings(requests=1, per_seconds=60),
        )
        await connector.get("/items", policy=policy)
        response = await connector.get("/items", policy=policy)
        assert response.from_cache

    @pytest.mark.asyncio
    async def test_retry_on_server_error(self, connector, api, sleep):
        api.statuses["/v1/flaky"] = [503, 502]
        policy = RequestPolicy(retry=RetrySettings(times=3, delay=100))

        response = await connector.get("/flaky", policy=policy)

        assert response.status == 200
        assert len(api.requests) == 3
        assert sleep.delays == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_retry_exhausted_on_transport_errors(self, connector, api):
        api.failures["/v1/down"] = 5
        policy = RequestPolicy(retry=RetrySettings(times=3, delay=10))

        with pytest.raises(RetryExhausted) as exc_info:
            await connector.get("/down", policy=policy)

        assert exc_info.value.attempts == 3
        assert len(api.requests) == 3

    @pytest.mark.asyncio
    async def test_circuit_breaker_opens(self, connector, api):
        api.statuses["/v1/status"] = [500, 500]
        policy = RequestPolicy(
            circuit_breaker=CircuitBreakerSettings(failure_threshold=2, reset_timeout=30)
        )
        await connector.get("/status", policy=policy)
        await connector.get("/status", policy=policy)

        with pytest.raises(CircuitOpenError):
            await connector.get("/status", policy=policy)
        assert len(api.requests) == 2

    @pytest.mark.asyncio
    async def test_every_retry_attempt_passes_the_breaker(self, connector, api):
        api.statuses["/v1/status"] = [500, 500, 500]
        policy = RequestPolicy(
            retry=RetrySettings(times=3, delay=10),
            circuit_breaker=CircuitBreakerSettings(failure_threshold=2),
        )

        # Third attempt is stopped by the open circuit, which is never retried
        with pytest.raises(CircuitOpenError):
            await connector.get("/status", policy=policy)

        assert len(api.requests) == 2

    @pytest.mark.asyncio
    async def test_idempotency_replay(self, connector, api):
        policy = RequestPolicy(idempotency=IdempotencySettings())
        request = Request(
            "POST", "/payments", body={"amount": 5}, policy=policy
        ).with_idempotency_key("pay-1")

        first = await connector.send(request)
        second = await connector.send(request)

        assert len(api.requests) == 1
        assert api.requests[0].headers["Idempotency-Key"] == "pay-1"
        assert second.was_idempotent_replay
        assert second.json() == first.json()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_closes_owned_client(self):
        async with Connector("https://api.test") as connector:
            client = connector.transport.client
        assert client.is_closed

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self, api):
        client = httpx.AsyncClient(transport=httpx.MockTransport(api))
        async with Connector("https://api.test", HttpxTransport(client=client)):
            pass
        assert not client.is_closed
        await client.aclose()
