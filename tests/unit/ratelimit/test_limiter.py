import pytest

from request_shield.backends.memory import MemoryRateLimitStore
from request_shield.exceptions import RateLimitExceeded
from request_shield.observability.constants import RATE_LIMIT_REJECTIONS_TOTAL
from request_shield.ratelimit.limiter import DEFAULT_BACKOFF_MS, RateLimiter
from request_shield.types.policy import RateLimitSettings, RequestPolicy
from request_shield.types.request import Request


def limited(requests=3, per_seconds=60, **kwargs) -> Request:
    settings = RateLimitSettings(requests=requests, per_seconds=per_seconds, **kwargs)
    return Request("GET", "/items", policy=RequestPolicy(rate_limit=settings))


@pytest.fixture
def limiter(clock, metrics):
    return RateLimiter(
        store=MemoryRateLimitStore(clock=clock), clock=clock, metrics=metrics
    )


class TestCheck:
    @pytest.mark.asyncio
    async def test_no_settings_is_unlimited(self, limiter):
        for _ in range(10):
            assert await limiter.check("api", Request()) is None

    @pytest.mark.asyncio
    async def test_fourth_request_is_rejected(self, limiter):
        request = limited()
        outcomes = []
        for _ in range(4):
            try:
                await limiter.check("api", request)
                outcomes.append(True)
            except RateLimitExceeded:
                outcomes.append(False)
        assert outcomes == [True, True, True, False]

    @pytest.mark.asyncio
    async def test_returns_window_state(self, limiter, clock):
        info = await limiter.check("api", limited())
        assert info.limit == 3
        assert info.remaining == 2
        assert info.reset == clock.now + 60

    @pytest.mark.asyncio
    async def test_state_comes_from_the_counted_window(self, clock):
        class ShiftingStore(MemoryRateLimitStore):
            """Separate reads see a window some other writer just opened."""

            async def get_reset_time(self, key):
                return clock.now + 999

            async def get_count(self, key):
                return 0

        limiter = RateLimiter(store=ShiftingStore(clock=clock), clock=clock)
        request = limited(requests=2)

        info = await limiter.check("api", request)
        assert info.remaining == 1
        assert info.reset == clock.now + 60

        await limiter.check("api", request)
        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.check("api", request)
        assert exc_info.value.retry_after == pytest.approx(60)
        assert exc_info.value.remaining == 0

    @pytest.mark.asyncio
    async def test_rejection_metadata(self, limiter, clock, metrics):
        request = limited(requests=1)
        await limiter.check("api", request)
        clock.advance(20)

        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.check("api", request)

        error = exc_info.value
        assert error.retry_after == pytest.approx(40)
        assert error.limit == 1
        assert error.remaining == 0
        assert error.key == "api"
        assert error.request is request
        assert error.is_client_side
        assert metrics.get_counter(RATE_LIMIT_REJECTIONS_TOTAL, {"key": "api"}) == 1

    @pytest.mark.asyncio
    async def test_window_reset_allows_again(self, limiter, clock):
        request = limited(requests=2, per_seconds=10)
        await limiter.check("api", request)
        await limiter.check("api", request)
        with pytest.raises(RateLimitExceeded):
            await limiter.check("api", request)

        clock.advance(10)
        info = await limiter.check("api", request)
        assert info.remaining == 1

    @pytest.mark.asyncio
    async def test_default_settings(self, clock):
        limiter = RateLimiter(
            default=RateLimitSettings(requests=1, per_seconds=60), clock=clock
        )
        await limiter.check("api", Request())
        with pytest.raises(RateLimitExceeded):
            await limiter.check("api", Request())

    @pytest.mark.asyncio
    async def test_request_settings_override_default(self, clock):
        limiter = RateLimiter(
            default=RateLimitSettings(requests=1, per_seconds=60), clock=clock
        )
        request = limited(requests=5)
        for _ in range(5):
            await limiter.check("api", request)


class TestKeys:
    @pytest.mark.asyncio
    async def test_callers_are_independent(self, limiter):
        request = limited(requests=1)
        await limiter.check("github", request)
        await limiter.check("gitlab", request)
        with pytest.raises(RateLimitExceeded):
            await limiter.check("github", request)

    @pytest.mark.asyncio
    async def test_key_template(self, limiter):
        base = limited(requests=1, key="user:{user_id}")
        alice = base.with_key_values({"user_id": "alice"})
        bob = base.with_key_values({"user_id": "bob"})

        await limiter.check("api", alice)
        await limiter.check("api", bob)
        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.check("api", alice)
        assert exc_info.value.key == "user:alice"

    def test_key_template_tolerates_missing_values(self, limiter):
        settings = RateLimitSettings(requests=1, per_seconds=1, key="user:{id}")
        assert limiter.resolve_key("api", Request(), settings) == "user:{id}"


class TestStateAndReset:
    @pytest.mark.asyncio
    async def test_get_state_does_not_count(self, limiter):
        request = limited()
        await limiter.check("api", request)
        state = await limiter.get_state("api", request)
        again = await limiter.get_state("api", request)
        assert state.remaining == 2
        assert again.remaining == 2

    @pytest.mark.asyncio
    async def test_get_state_without_settings(self, limiter):
        assert await limiter.get_state("api", Request()) is None

    @pytest.mark.asyncio
    async def test_reset(self, limiter):
        request = limited(requests=1)
        await limiter.check("api", request)
        await limiter.reset("api", request)
        await limiter.check("api", request)


class TestBackoff:
    def test_retry_settings_only_when_enabled(self, limiter):
        assert limiter.retry_settings(limited()) is None
        assert limiter.retry_settings(limited(retry=True)) is not None
        assert limiter.retry_settings(Request()) is None

    @pytest.mark.parametrize(
        "backoff,expected",
        [
            ("linear", [1000, 2000, 3000]),
            ("exponential", [1000, 2000, 4000]),
            ("fixed", [1000, 1000, 1000]),
        ],
    )
    def test_builtin_backoff(self, limiter, backoff, expected):
        request = limited(retry=True, backoff=backoff)
        settings = request.policy.rate_limit
        delays = [limiter.calculate_backoff(request, settings, n) for n in (1, 2, 3)]
        assert delays == expected
        assert DEFAULT_BACKOFF_MS == 1000

    def test_custom_strategy(self, limiter):
        class UseRetryAfter:
            def calculate_delay(self, request, attempt, retry_after):
                return int(retry_after * 1000) + attempt

        request = limited(retry=True, backoff=UseRetryAfter())
        settings = request.policy.rate_limit
        assert limiter.calculate_backoff(request, settings, 2, retry_after=1.5) == 1502
