# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Resilience behaviors expressed as middleware.

The connector installs them in this order, outermost first::

    Idempotency -> Cache -> RateLimit -> Retry -> CircuitBreaker -> transport

so a cache hit costs no rate limit budget, a rate limit rejection happens
before any attempt, and every retry attempt passes through the breaker.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from ..backends.base import CircuitBreakerStore
from ..backends.memory import MemoryCircuitStore
from ..caching.cache import ResponseCache
from ..exceptions import RateLimitExceeded, RequestFailure
from ..observability.collector import MetricsCollector
from ..observability.constants import RETRIES_TOTAL
from ..ratelimit.limiter import RateLimiter
from ..resilience.circuit import CircuitBreaker, resolve_circuit_key
from ..resilience.retry import RetryHandler
from ..security.idempotency import IdempotencyManager
from ..types.policy import CircuitBreakerSettings
from ..types.request import Request
from ..types.response import Response
from .pipeline import Next

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class IdempotencyMiddleware:
    """
    Attaches an idempotency key to mutation requests and replays stored
    responses for keys that already succeeded.

    Only requests whose policy enables idempotency are touched; safe
    methods never are.
    """

    def __init__(self, manager: IdempotencyManager) -> None:
        self.manager = manager

    async def handle(self, request: Request, next: Next) -> Response:
        settings = request.policy.idempotency
        if settings is None or not settings.enabled or request.method in SAFE_METHODS:
            return await next(request)

        key = (
            (settings.key_method(request) if settings.key_method else None)
            or request.idempotency_key
            or self.manager.generate_key(request)
        )
        request = self.manager.add_to_request(request, key, settings.header)

        replay = await self.manager.get_cached_response(key)
        if replay is not None:
            return replay.with_request(request)

        response = await next(request)
        if response.successful:
            await self.manager.cache_response(key, response)
        return response.with_idempotency_key(key)


class CacheMiddleware:
    """
    Serves cacheable requests from the cache and stores fresh 2xx responses.

    After any successful response the request's InvalidatesCache settings
    are applied.
    """

    def __init__(self, cache: ResponseCache, caller: str) -> None:
        self.cache = cache
        self.caller = caller

    async def handle(self, request: Request, next: Next) -> Response:
        cached = await self.cache.get(self.caller, request)
        if cached is not None:
            return cached

        response = await next(request)
        if response.successful and not response.from_cache:
            await self.cache.put(self.caller, request, response)
        await self.cache.handle_invalidation(request, response)
        return response


class RateLimitMiddleware:
    """
    Counts each request against its fixed window before it goes out.

    When the request's settings enable ``retry`` a rejection waits for the
    configured backoff and tries again, up to ``max_retries`` times, before
    the final RateLimitExceeded propagates.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        caller: str,
        sleep: Sleep = asyncio.sleep,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.limiter = limiter
        self.caller = caller
        self._sleep = sleep
        self._metrics = metrics

    async def handle(self, request: Request, next: Next) -> Response:
        settings = self.limiter.retry_settings(request)
        attempt = 0
        while True:
            try:
                await self.limiter.check(self.caller, request)
                break
            except RateLimitExceeded as e:
                attempt += 1
                if settings is None or attempt > settings.max_retries:
                    raise
                delay_ms = self.limiter.calculate_backoff(
                    request, settings, attempt, e.retry_after
                )
                logger.debug(
                    f"Rate limited on '{e.key}', retry {attempt}/"
                    f"{settings.max_retries} in {delay_ms}ms"
                )
                if self._metrics is not None:
                    self._metrics.inc_counter(
                        RETRIES_TOTAL, labels={"reason": "rate_limit"}
                    )
                await self._sleep(delay_ms / 1000)
        return await next(request)


class RetryMiddleware:
    """Re-enters the rest of the pipeline according to the RetryHandler."""

    def __init__(self, handler: RetryHandler) -> None:
        self.handler = handler

    async def handle(self, request: Request, next: Next) -> Response:
        if self.handler.settings_for(request) is None:
            return await next(request)
        return await self.handler.run(request, next)


class CircuitBreakerMiddleware:
    """
    Gates calls through a per-key circuit breaker.

    Requests without circuit breaker settings (and no connector default)
    pass straight through. A response counts as a failure per
    ``CircuitBreaker.is_failure``; a transport failure always counts. Any
    other exception, cancellation included, gives back the trial slot
    without recording an outcome.
    """

    def __init__(
        self,
        caller: str,
        store: CircuitBreakerStore | None = None,
        default: CircuitBreakerSettings | None = None,
        clock: Callable[[], float] = time.time,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.caller = caller
        self.store = store if store is not None else MemoryCircuitStore()
        self.default = default
        self._clock = clock
        self._metrics = metrics

    def breaker_for(self, request: Request) -> CircuitBreaker | None:
        settings = request.policy.circuit_breaker or self.default
        if settings is None:
            return None
        return CircuitBreaker(
            resolve_circuit_key(self.caller, request, settings),
            settings,
            store=self.store,
            clock=self._clock,
            metrics=self._metrics,
        )

    async def handle(self, request: Request, next: Next) -> Response:
        breaker = self.breaker_for(request)
        if breaker is None:
            return await next(request)

        await breaker.allow_request()
        resolved = False
        try:
            try:
                response = await next(request)
            except RequestFailure as e:
                if e.response is None or breaker.is_failure(e.response):
                    await breaker.record_failure()
                else:
                    await breaker.record_success()
                resolved = True
                raise
            if breaker.is_failure(response):
                await breaker.record_failure()
            else:
                await breaker.record_success()
            resolved = True
            return response
        finally:
            if not resolved:
                await breaker.release()


__all__ = [
    "CacheMiddleware",
    "CircuitBreakerMiddleware",
    "IdempotencyMiddleware",
    "RateLimitMiddleware",
    "RetryMiddleware",
]
