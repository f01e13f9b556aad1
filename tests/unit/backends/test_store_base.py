import pytest

from request_shield.backends.base import (
    CacheStore,
    HealthCheckResult,
    RateLimitBucket,
    RateLimitStore,
)


class ConcreteRateLimitStore(RateLimitStore):
    """Concrete implementation of RateLimitStore for testing."""

    def __init__(self, count=0):
        super().__init__("test")
        self.count = count

    async def attempt_with_state(self, key, limit, per_seconds):
        return True, RateLimitBucket(count=1, window_start=0.0, window_size=per_seconds)

    async def get_count(self, key):
        return self.count

    async def get_reset_time(self, key):
        return None

    async def reset(self, key):
        pass

    async def clear(self):
        pass


class ConcreteCacheStore(CacheStore):
    async def get(self, key):
        return None

    async def set(self, key, value, ttl=None):
        pass

    async def delete(self, key):
        return False

    async def clear(self):
        return True

    async def append_to_index(self, index_key, member, ttl=None):
        return [member]

    async def pop_index(self, index_key):
        return []


class TestRateLimitBucket:
    def test_reset_at(self):
        bucket = RateLimitBucket(count=1, window_start=100.0, window_size=60)
        assert bucket.reset_at == 160.0

    def test_expired_at_boundary(self):
        bucket = RateLimitBucket(count=1, window_start=100.0, window_size=60)
        assert not bucket.expired(159.9)
        assert bucket.expired(160.0)
        assert bucket.expired(200.0)


class TestRateLimitStoreDefaults:
    @pytest.mark.asyncio
    async def test_get_remaining(self):
        store = ConcreteRateLimitStore(count=3)
        assert await store.get_remaining("k", 5) == 2

    @pytest.mark.asyncio
    async def test_attempt_delegates_to_attempt_with_state(self):
        assert await ConcreteRateLimitStore().attempt("k", 5, 60) is True

    @pytest.mark.asyncio
    async def test_get_remaining_never_negative(self):
        store = ConcreteRateLimitStore(count=9)
        assert await store.get_remaining("k", 5) == 0

    @pytest.mark.asyncio
    async def test_default_health_check(self):
        store = ConcreteRateLimitStore()
        result = await store.health_check()
        assert isinstance(result, HealthCheckResult)
        assert result.healthy is True
        assert result.namespace == "test"


class TestCacheStoreDefaults:
    def test_default_namespace(self):
        assert ConcreteCacheStore().namespace == "request_shield"

    def test_abstract_store_cannot_be_instantiated(self):
        with pytest.raises(TypeError):
            CacheStore()  # type: ignore[abstract]

    @pytest.mark.asyncio
    async def test_health_check(self):
        result = await ConcreteCacheStore("custom").health_check()
        assert result.healthy is True
        assert result.backend_type == "abstract"
        assert result.namespace == "custom"
        assert result.error is None
