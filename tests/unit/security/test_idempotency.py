import pytest

from request_shield.backends.memory import MemoryCacheStore
from request_shield.security.idempotency import (
    DEFAULT_HEADER,
    KEY_PREFIX,
    IdempotencyManager,
)
from request_shield.types.request import Request
from request_shield.types.response import Response


class FixedKeys:
    def __init__(self):
        self.count = 0

    def generate(self, request=None):
        self.count += 1
        return f"key-{self.count}"


@pytest.fixture
def store(clock):
    return MemoryCacheStore(clock=clock)


@pytest.fixture
def manager(store, clock):
    return IdempotencyManager(store=store, ttl=60, key_generator=FixedKeys(), clock=clock)


class TestAddToRequest:
    def test_generates_key(self, manager):
        request = manager.add_to_request(Request("POST", "/payments"))
        assert request.idempotency_key == "key-1"
        assert request.header(DEFAULT_HEADER) == "key-1"

    def test_keeps_request_key(self, manager):
        request = manager.add_to_request(
            Request("POST", "/payments").with_idempotency_key("mine")
        )
        assert request.header(DEFAULT_HEADER) == "mine"

    def test_explicit_key_and_header(self, manager):
        request = manager.add_to_request(
            Request("POST", "/payments"), key="given", header_name="X-Request-Key"
        )
        assert request.header("X-Request-Key") == "given"
        assert request.header(DEFAULT_HEADER) is None

    def test_default_generator_is_uuid(self):
        assert len(IdempotencyManager().generate_key()) == 36


class TestStoredResponses:
    @pytest.mark.asyncio
    async def test_replay(self, manager, store):
        await manager.cache_response("pay-1", Response.make({"id": 7}, status=201))

        assert await store.get(f"{KEY_PREFIX}pay-1") is not None
        replay = await manager.get_cached_response("pay-1")
        assert replay.status == 201
        assert replay.json("id") == 7
        assert replay.idempotency_key == "pay-1"
        assert IdempotencyManager.is_replay(replay)

    @pytest.mark.asyncio
    async def test_unknown_key(self, manager):
        assert await manager.get_cached_response("nope") is None

    @pytest.mark.asyncio
    async def test_expires_after_ttl(self, manager, clock):
        await manager.cache_response("pay-1", Response.make({"id": 7}))
        clock.advance(61)
        assert await manager.get_cached_response("pay-1") is None

    @pytest.mark.asyncio
    async def test_invalidate(self, manager):
        await manager.cache_response("pay-1", Response.make({"id": 7}))
        assert await manager.invalidate("pay-1") is True
        assert await manager.get_cached_response("pay-1") is None

    @pytest.mark.asyncio
    async def test_foreign_values_ignored(self, manager, store):
        await store.set(f"{KEY_PREFIX}odd", "not a record", 60)
        assert await manager.get_cached_response("odd") is None
