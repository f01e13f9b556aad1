# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Connector: the single-request entry point.

A connector owns one API's base URL, default headers, authenticator and the
shared resilience components (cache, rate limiter, retry handler, circuit
store, idempotency manager). ``send`` runs a request through::

    user middleware -> Idempotency -> Cache -> RateLimit -> Retry
        -> CircuitBreaker -> transport

and then applies the throw-on-error policy.

The connector's ``name`` identifies it as the caller in cache keys, rate
limit keys and circuit keys. It defaults to the class name, so subclassing
per API (``class GitHub(Connector)``) keeps their state apart.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from ..backends.base import CircuitBreakerStore
from ..backends.memory import MemoryCircuitStore
from ..caching.cache import ResponseCache
from ..exceptions import HttpFailure, StrayRequestError
from ..middleware.pipeline import MiddlewareLike, MiddlewarePipeline
from ..middleware.resilience import (
    CacheMiddleware,
    CircuitBreakerMiddleware,
    IdempotencyMiddleware,
    RateLimitMiddleware,
    RetryMiddleware,
)
from ..observability.collector import MetricsCollector
from ..protocols.strategies import Authenticator
from ..protocols.transport import PreparedCall, TransportProtocol
from ..ratelimit.limiter import RateLimiter
from ..resilience.retry import RetryHandler
from ..security.idempotency import IdempotencyManager
from ..transport.httpx_transport import HttpxTransport
from ..types.policy import CircuitBreakerSettings, RequestPolicy, ThrowOnError
from ..types.request import JSON_CONTENT_TYPE, Request
from ..types.response import RateLimitInfo, Response
from .preparation import prepare_call

if TYPE_CHECKING:
    from ..pool.dispatcher import Pool, PoolInput

logger = logging.getLogger(__name__)


class Connector:
    """
    Sends requests to one API through the resilience layers.

    Args:
        base_url: Root URL every endpoint is joined to
        transport: Network layer; an HttpxTransport is created when omitted
        name: Caller identity for keys; defaults to the class name
        cache: Response cache (in-memory by default)
        rate_limiter: Rate limiter (in-memory by default)
        retry: Retry handler
        circuit_store: Store for circuit breaker state
        circuit_breaker: Circuit settings for requests that declare none
        idempotency: Idempotency manager
        middleware: User middleware, outermost first
        throw_on_error: Raise HttpFailure for failed responses; True means
            both 4xx and 5xx. A request's own setting wins.
        prevent_stray_requests: Refuse to send anything (tests)
        concurrency_limit: Default pool concurrency
        authenticator: Applied to every prepared request
        default_headers: Sent with every request unless overridden
        timeout: Per-call timeout in seconds
        metrics: Optional metrics collector shared by the default components
        clock: Time source for the default components
        sleep: Sleep used between retries

    Example:
        >>> async with Connector("https://api.github.com", name="github") as github:
        ...     response = await github.get("/repos/python/cpython")
        ...     print(response.json("stargazers_count"))
    """

    def __init__(
        self,
        base_url: str,
        transport: TransportProtocol | None = None,
        *,
        name: str | None = None,
        cache: ResponseCache | None = None,
        rate_limiter: RateLimiter | None = None,
        retry: RetryHandler | None = None,
        circuit_store: CircuitBreakerStore | None = None,
        circuit_breaker: CircuitBreakerSettings | None = None,
        idempotency: IdempotencyManager | None = None,
        middleware: Iterable[MiddlewareLike] = (),
        throw_on_error: ThrowOnError | bool = False,
        prevent_stray_requests: bool = False,
        concurrency_limit: int | None = None,
        authenticator: Authenticator | None = None,
        default_headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if concurrency_limit is not None and concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")

        self.base_url = base_url
        self.transport = transport if transport is not None else HttpxTransport()
        self.name = name or type(self).__name__
        self.cache = cache or ResponseCache(clock=clock, metrics=metrics)
        self.rate_limiter = rate_limiter or RateLimiter(clock=clock, metrics=metrics)
        self.retry = retry or RetryHandler(sleep=sleep, metrics=metrics)
        self.circuit_store = (
            circuit_store if circuit_store is not None else MemoryCircuitStore()
        )
        self.idempotency = idempotency or IdempotencyManager(clock=clock)
        self.middleware = MiddlewarePipeline(list(middleware))
        if isinstance(throw_on_error, bool):
            throw_on_error = ThrowOnError() if throw_on_error else ThrowOnError(False, False)
        self.throw_on_error = throw_on_error
        self.prevent_stray_requests = prevent_stray_requests
        self.concurrency_limit = concurrency_limit
        self.authenticator = authenticator
        self.default_headers = dict(default_headers or {})
        self.timeout = timeout
        self.metrics = metrics

        self._resilience: list[MiddlewareLike] = [
            IdempotencyMiddleware(self.idempotency),
            CacheMiddleware(self.cache, self.name),
            RateLimitMiddleware(self.rate_limiter, self.name, sleep=sleep, metrics=metrics),
            RetryMiddleware(self.retry),
            CircuitBreakerMiddleware(
                self.name,
                store=self.circuit_store,
                default=circuit_breaker,
                clock=clock,
                metrics=metrics,
            ),
        ]

    # === Sending ===

    async def send(self, request: Request) -> Response:
        """
        Send ``request`` through the middleware and resilience layers.

        Raises:
            StrayRequestError: When stray requests are prevented
            RateLimitExceeded: When the local limit is exhausted
            CircuitOpenError: When the circuit rejects the call
            RetryExhausted: When every attempt failed with an exception
            HttpFailure: For failed responses under the throw-on-error policy
        """
        if self.prevent_stray_requests:
            raise StrayRequestError(request)

        request = self.prepare_request(request)
        pipeline = MiddlewarePipeline([*self.middleware.middleware, *self._resilience])
        response = await pipeline.process(request, self._dispatch)

        policy = request.policy.throw_on_error or self.throw_on_error
        if response.failed and policy.should_throw(response.status):
            raise HttpFailure.from_response(response, request)
        return response

    async def get(
        self,
        endpoint: str,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        policy: RequestPolicy | None = None,
    ) -> Response:
        return await self.send(
            self._build("GET", endpoint, query=query, headers=headers, policy=policy)
        )

    async def post(
        self,
        endpoint: str,
        body: Any = None,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        policy: RequestPolicy | None = None,
    ) -> Response:
        return await self.send(
            self._build("POST", endpoint, body, query, headers, policy)
        )

    async def put(
        self,
        endpoint: str,
        body: Any = None,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        policy: RequestPolicy | None = None,
    ) -> Response:
        return await self.send(self._build("PUT", endpoint, body, query, headers, policy))

    async def patch(
        self,
        endpoint: str,
        body: Any = None,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        policy: RequestPolicy | None = None,
    ) -> Response:
        return await self.send(
            self._build("PATCH", endpoint, body, query, headers, policy)
        )

    async def delete(
        self,
        endpoint: str,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        policy: RequestPolicy | None = None,
    ) -> Response:
        return await self.send(
            self._build("DELETE", endpoint, query=query, headers=headers, policy=policy)
        )

    def pool(self, requests: PoolInput) -> Pool:
        """Start a bounded-concurrency batch over ``requests``."""
        from ..pool.dispatcher import Pool

        return Pool(self, requests, metrics=self.metrics)

    # === Preparation ===

    def prepare_request(self, request: Request) -> Request:
        """Apply the authenticator; shared by ``send`` and the pool."""
        if self.authenticator is not None:
            request = self.authenticator.authenticate(request)
        return request

    def prepare_call(self, request: Request) -> PreparedCall:
        return prepare_call(self.base_url, self.default_headers, request, self.timeout)

    # === Cache and rate limit management ===

    async def forget_cache(self, request: Request) -> bool:
        return await self.cache.forget(self.name, request)

    async def invalidate_cache_tags(self, tags: Iterable[str]) -> int:
        return await self.cache.invalidate_tags(tags)

    async def flush_cache(self) -> bool:
        return await self.cache.flush()

    async def rate_limit_state(self, request: Request) -> RateLimitInfo | None:
        """Current window for ``request`` without counting against it."""
        return await self.rate_limiter.get_state(self.name, request)

    # === Lifecycle ===

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> Connector:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    # === Internals ===

    async def _dispatch(self, request: Request) -> Response:
        call = self.prepare_call(request)
        logger.debug(f"{self.name}: {call.method} {call.url}")
        return await self.transport.send(call)

    def _build(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        policy: RequestPolicy | None = None,
    ) -> Request:
        return Request(
            method=method,
            endpoint=endpoint,
            headers=headers or {},
            query=query or {},
            body=body,
            content_type=JSON_CONTENT_TYPE,
            policy=policy or RequestPolicy(),
        )


__all__ = ["Connector"]
