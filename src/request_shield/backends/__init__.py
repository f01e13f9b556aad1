# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Store implementations for request-shield.

Available stores:
- CacheStore, RateLimitStore, CircuitBreakerStore: Abstract interfaces
- MemoryCacheStore, MemoryRateLimitStore, MemoryCircuitStore: In-process
  stores for single-process applications and tests
- RedisCacheStore, RedisRateLimitStore: Shared stores for multi-process
  deployments (requires redis extra)

Note: Redis stores are lazily imported to avoid requiring the redis package
when only the memory stores are used.
"""

from typing import TYPE_CHECKING, cast

from request_shield.backends.base import (
    CacheStore,
    CircuitBreakerStore,
    HealthCheckResult,
    RateLimitBucket,
    RateLimitStore,
)
from request_shield.backends.memory import (
    MemoryCacheStore,
    MemoryCircuitStore,
    MemoryRateLimitStore,
)

# Lazy imports for optional redis stores
if TYPE_CHECKING:
    from request_shield.backends.redis import RedisCacheStore, RedisRateLimitStore

__all__ = [
    # Interfaces
    "CacheStore",
    "CircuitBreakerStore",
    "HealthCheckResult",
    # Memory stores
    "MemoryCacheStore",
    "MemoryCircuitStore",
    "MemoryRateLimitStore",
    "RateLimitBucket",
    "RateLimitStore",
    # Redis stores (lazy loaded)
    "RedisCacheStore",
    "RedisRateLimitStore",
]


def __getattr__(name: str) -> type:
    """Lazy import for optional redis stores."""
    if name in ("RedisCacheStore", "RedisRateLimitStore"):
        try:
            from request_shield.backends import redis as redis_module

            return cast(type, getattr(redis_module, name))
        except ImportError as e:  # pragma: no cover
            raise ImportError(  # pragma: no cover
                f"'{name}' requires the 'redis' extra. "
                "Install with: pip install request-shield[redis]"
            ) from e
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
