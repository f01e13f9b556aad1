# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Request Shield - Resilience and caching layer for HTTP API clients.

This library sits between application code and a remote API and decides,
per request, whether to answer from cache, wait for or reject on a rate
limit, short-circuit through an open circuit breaker, or retry a failure.

Key Features:
    - Tag-indexed response cache with stable, order-insensitive keys
    - Fixed-window rate limiting with memory and Redis stores
    - Per-key circuit breakers (count or percentage policies)
    - Retry with exponential backoff and Retry-After support
    - Composable async middleware pipeline
    - Bounded-concurrency batch dispatch

Quick Start:
    >>> from request_shield import Connector, Request, RequestPolicy, CacheSettings
    >>>
    >>> policy = RequestPolicy(cache=CacheSettings(ttl=60, tags=("users",)))
    >>> async with Connector("https://api.example.com", name="example") as api:
    ...     response = await api.send(Request("GET", "/users/1", policy=policy))
    ...     again = await api.send(Request("GET", "/users/1", policy=policy))
    ...     assert again.from_cache

Main Exports:
    - Connector, Pool: Entry points for single and batched requests
    - Request, Response, RequestPolicy and the *Settings records
    - ResponseCache, RateLimiter, CircuitBreaker, RetryHandler
    - MiddlewarePipeline and the built-in middleware
    - MemoryCacheStore, MemoryRateLimitStore, MemoryCircuitStore

Note: Redis stores require the 'redis' extra. Install with:
    pip install request-shield[redis]

Version: 1.0.0
"""

__version__ = "1.0.0"

from typing import TYPE_CHECKING

from .backends import (
    CacheStore,
    CircuitBreakerStore,
    MemoryCacheStore,
    MemoryCircuitStore,
    MemoryRateLimitStore,
    RateLimitStore,
)
from .caching import CacheConfig, CacheKeyGenerator, ResponseCache
from .client import BasicAuth, BearerAuth, Connector, HeaderAuth, QueryAuth
from .exceptions import (
    BackendConnectionError,
    BackendOperationError,
    CacheKeyError,
    CircuitOpenError,
    ClientHttpFailure,
    ConfigurationError,
    HttpFailure,
    RateLimitExceeded,
    RequestFailure,
    RetryExhausted,
    ServerHttpFailure,
    ShieldError,
    StrayRequestError,
    TransportFailure,
)
from .middleware import (
    CacheMiddleware,
    CircuitBreakerMiddleware,
    HeaderMiddleware,
    IdempotencyMiddleware,
    LoggingMiddleware,
    MiddlewarePipeline,
    RateLimitMiddleware,
    RetryMiddleware,
    TimingMiddleware,
    TracingMiddleware,
)
from .observability import MetricsCollector, get_metrics_collector
from .pool import Pool
from .protocols import PreparedCall, TransportProtocol
from .ratelimit import RateLimiter
from .resilience import CircuitBreaker, RetryContext, RetryHandler
from .security import IdempotencyManager
from .transport import HttpxTransport
from .types import (
    CacheSettings,
    CircuitBreakerSettings,
    CircuitSnapshot,
    CircuitState,
    IdempotencySettings,
    InvalidatesCache,
    RateLimitInfo,
    RateLimitSettings,
    Request,
    RequestPolicy,
    Response,
    RetrySettings,
    ThrowOnError,
)

# Lazy import for optional redis stores
if TYPE_CHECKING:
    from .backends import RedisCacheStore, RedisRateLimitStore

__all__ = [
    "BackendConnectionError",
    "BackendOperationError",
    "BasicAuth",
    "BearerAuth",
    "CacheConfig",
    "CacheKeyError",
    "CacheKeyGenerator",
    # Middleware
    "CacheMiddleware",
    # Types
    "CacheSettings",
    # Backends
    "CacheStore",
    "CircuitBreaker",
    "CircuitBreakerMiddleware",
    "CircuitBreakerSettings",
    "CircuitBreakerStore",
    "CircuitOpenError",
    "CircuitSnapshot",
    "CircuitState",
    "ClientHttpFailure",
    "ConfigurationError",
    # Client
    "Connector",
    "HeaderAuth",
    "HeaderMiddleware",
    "HttpFailure",
    "HttpxTransport",
    "IdempotencyManager",
    "IdempotencyMiddleware",
    "IdempotencySettings",
    "InvalidatesCache",
    "LoggingMiddleware",
    "MemoryCacheStore",
    "MemoryCircuitStore",
    "MemoryRateLimitStore",
    "MetricsCollector",
    "MiddlewarePipeline",
    "Pool",
    "PreparedCall",
    "QueryAuth",
    "RateLimitExceeded",
    "RateLimitInfo",
    "RateLimitMiddleware",
    "RateLimitSettings",
    "RateLimitStore",
    "RateLimiter",
    "RedisCacheStore",  # Lazy loaded - requires redis extra
    "RedisRateLimitStore",  # Lazy loaded - requires redis extra
    "Request",
    "RequestFailure",
    "RequestPolicy",
    "Response",
    "ResponseCache",
    "RetryContext",
    "RetryExhausted",
    "RetryHandler",
    "RetryMiddleware",
    "RetrySettings",
    "ServerHttpFailure",
    # Exceptions
    "ShieldError",
    "StrayRequestError",
    "ThrowOnError",
    "TimingMiddleware",
    "TracingMiddleware",
    "TransportFailure",
    "TransportProtocol",
    "get_metrics_collector",
]


def __getattr__(name: str) -> type:
    """Lazy import for optional redis stores."""
    if name in ("RedisCacheStore", "RedisRateLimitStore"):
        from . import backends

        return getattr(backends, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
