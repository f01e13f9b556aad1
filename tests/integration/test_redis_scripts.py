"""
Integration tests for the Redis stores using fakeredis.

Unlike the unit tests, which mock evalsha() to return expected values,
these tests execute the real fixed-window Lua script against a fake Redis
instance.

Prerequisites:
    - fakeredis>=2.26.0
    - lupa>=2.0 (required for Lua script execution in fakeredis)
"""

import pytest
import pytest_asyncio

from request_shield.backends.redis import RedisCacheStore, RedisRateLimitStore

try:
    import fakeredis.aioredis as fakeredis
except ImportError:
    fakeredis = None

try:
    import lupa
except ImportError:
    lupa = None


pytestmark = pytest.mark.skipif(fakeredis is None, reason="fakeredis not installed")

requires_lua = pytest.mark.skipif(
    lupa is None, reason="lupa not installed (required for Lua)"
)


@pytest_asyncio.fixture
async def redis():
    """Create a fresh fakeredis instance for each test."""
    r = fakeredis.FakeRedis(decode_responses=True)
    yield r
    await r.aclose()


@pytest.fixture
def limiter_store(redis, clock):
    return RedisRateLimitStore(redis_client=redis, namespace="rl:test", clock=clock)


@requires_lua
class TestFixedWindowScript:
    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self, limiter_store):
        results = [await limiter_store.attempt("api", 3, 60) for _ in range(4)]
        assert results == [True, True, True, False]
        assert await limiter_store.get_count("api") == 3

    @pytest.mark.asyncio
    async def test_bucket_layout(self, limiter_store, redis, clock):
        await limiter_store.attempt("api", 3, 60)

        state = await redis.hgetall("rl:test:api")
        assert state["count"] == "1"
        assert float(state["window_start"]) == clock()
        assert float(state["window_size"]) == 60
        assert 0 < await redis.pttl("rl:test:api") <= 60_000

    @pytest.mark.asyncio
    async def test_window_resets(self, limiter_store, clock):
        await limiter_store.attempt("api", 1, 60)
        assert await limiter_store.attempt("api", 1, 60) is False

        clock.advance(60)

        assert await limiter_store.get_count("api") == 0
        assert await limiter_store.attempt("api", 1, 60) is True

    @pytest.mark.asyncio
    async def test_reset_time(self, limiter_store, clock):
        start = clock()
        await limiter_store.attempt("api", 5, 30)
        clock.advance(10)
        assert await limiter_store.get_reset_time("api") == start + 30

    @pytest.mark.asyncio
    async def test_attempt_with_state_reports_window(self, limiter_store, clock):
        start = clock()
        await limiter_store.attempt("api", 2, 60)
        clock.advance(5)

        allowed, bucket = await limiter_store.attempt_with_state("api", 2, 60)
        assert allowed is True
        assert bucket.count == 2
        assert bucket.reset_at == start + 60

        allowed, bucket = await limiter_store.attempt_with_state("api", 2, 60)
        assert allowed is False
        assert bucket.count == 2

    @pytest.mark.asyncio
    async def test_keys_isolated(self, limiter_store):
        await limiter_store.attempt("a", 1, 60)
        assert await limiter_store.attempt("b", 1, 60) is True

    @pytest.mark.asyncio
    async def test_script_reloaded_after_flush(self, limiter_store, redis):
        await limiter_store.attempt("api", 5, 60)
        await redis.script_flush()
        assert await limiter_store.attempt("api", 5, 60) is True
        assert await limiter_store.get_count("api") == 2

    @pytest.mark.asyncio
    async def test_reset_and_clear(self, limiter_store, redis):
        await limiter_store.attempt("a", 1, 60)
        await limiter_store.attempt("b", 1, 60)

        await limiter_store.reset("a")
        assert await limiter_store.get_count("a") == 0

        await limiter_store.clear()
        assert await redis.keys("rl:test:*") == []


class TestCacheStore:
    @pytest.mark.asyncio
    async def test_round_trip_with_ttl(self, redis):
        store = RedisCacheStore(redis_client=redis, namespace="cache:test")
        await store.set("users", {"status": 200, "data": [1, 2]}, ttl=30)

        assert await store.get("users") == {"status": 200, "data": [1, 2]}
        assert 0 < await redis.ttl("cache:test:users") <= 30

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, redis):
        store = RedisCacheStore(redis_client=redis, namespace="cache:test")
        await store.set("a", 1)
        await store.set("b", 2)

        assert await store.delete("a") is True
        assert await store.delete("a") is False
        assert await store.clear() is True
        assert await store.get("b") is None

    @pytest.mark.asyncio
    async def test_undecodable_value_discarded(self, redis):
        store = RedisCacheStore(redis_client=redis, namespace="cache:test")
        await redis.set("cache:test:raw", "{not json")
        assert await store.get("raw") is None

    @pytest.mark.asyncio
    async def test_pop_index_takes_the_index(self, redis):
        store = RedisCacheStore(redis_client=redis, namespace="cache:test")
        await redis.set("cache:test:tags:users", '["a", "b"]')

        assert await store.pop_index("tags:users") == ["a", "b"]
        assert await redis.exists("cache:test:tags:users") == 0
        assert await store.pop_index("tags:users") == []
