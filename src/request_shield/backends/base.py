# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Base store interfaces for request-shield.

This module defines the three storage contracts the resilience layer
depends on:

- CacheStore: key/value storage with TTL for cached responses, plus an
  atomic append used to maintain tag indexes
- RateLimitStore: fixed-window request counters
- CircuitBreakerStore: per-key circuit state with atomic transitions

Implementations must make every read-modify-write step atomic per key.
Locking is fine-grained; a store never serializes unrelated keys behind a
single lock.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from ..types.circuit import CircuitSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

CircuitTransition = Callable[[CircuitSnapshot], tuple[CircuitSnapshot, T]]


@dataclass
class HealthCheckResult:
    """
    Structured health check result for store monitoring.

    Attributes:
        healthy: Whether the store is operational
        backend_type: Type of store (e.g., 'redis', 'memory')
        namespace: Store namespace
        error: Error message if unhealthy
        metadata: Additional store-specific information
    """

    healthy: bool
    backend_type: str
    namespace: str
    error: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class RateLimitBucket:
    """
    Fixed-window counter for one limiter key.

    The window is expired once ``now >= window_start + window_size``; an
    expired bucket is replaced by a fresh one on the next attempt.
    """

    count: int
    window_start: float
    window_size: float

    @property
    def reset_at(self) -> float:
        return self.window_start + self.window_size

    def expired(self, now: float) -> bool:
        return now >= self.reset_at


class CacheStore(abc.ABC):
    """
    Key/value store for cached response records.

    Values are JSON-compatible structures. ``ttl`` is in seconds; ``None``
    or ``0`` stores the value without expiry.
    """

    backend_type = "abstract"

    def __init__(self, namespace: str = "request_shield"):
        self.namespace = namespace

    @abc.abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None when absent or expired."""
        pass

    @abc.abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store ``value`` under ``key``."""
        pass

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete ``key``; returns whether it existed."""
        pass

    @abc.abstractmethod
    async def clear(self) -> bool:
        """Remove every key in this store's namespace."""
        pass

    @abc.abstractmethod
    async def append_to_index(
        self, index_key: str, member: str, ttl: int | None = None
    ) -> list[str]:
        """
        Atomically add ``member`` to the list stored at ``index_key``.

        The list keeps insertion order and holds no duplicates. Concurrent
        appends to the same index must never lose a member.

        Returns:
            The index contents after the append
        """
        pass

    @abc.abstractmethod
    async def pop_index(self, index_key: str) -> list[str]:
        """
        Atomically read and delete the list stored at ``index_key``.

        A member appended concurrently lands either in the returned list or
        in a fresh index created after the pop, never in neither.
        """
        pass

    async def health_check(self) -> HealthCheckResult:
        return HealthCheckResult(
            healthy=True, backend_type=self.backend_type, namespace=self.namespace
        )


class RateLimitStore(abc.ABC):
    """
    Fixed-window counter store.

    Both the in-process and shared implementations follow the same rules:
    an attempt on a missing or expired bucket starts a fresh window at
    ``now``; an attempt on a full bucket is rejected without incrementing.
    The window is approximate by design, so a burst of up to twice the
    limit can straddle a window boundary.
    """

    backend_type = "abstract"

    def __init__(self, namespace: str = "request_shield:ratelimit"):
        self.namespace = namespace

    @abc.abstractmethod
    async def attempt_with_state(
        self, key: str, limit: int, per_seconds: int
    ) -> tuple[bool, RateLimitBucket]:
        """
        Count one request against ``key`` in a single atomic step.

        Returns:
            Whether the request is allowed, and the bucket as it stands
            after the attempt
        """
        pass

    async def attempt(self, key: str, limit: int, per_seconds: int) -> bool:
        """Count one request against ``key``; returns whether it is allowed."""
        allowed, _ = await self.attempt_with_state(key, limit, per_seconds)
        return allowed

    @abc.abstractmethod
    async def get_count(self, key: str) -> int:
        """Requests counted in the active window (0 when none)."""
        pass

    async def get_remaining(self, key: str, limit: int) -> int:
        return max(0, limit - await self.get_count(key))

    @abc.abstractmethod
    async def get_reset_time(self, key: str) -> float | None:
        """Unix timestamp when the active window ends, or None."""
        pass

    @abc.abstractmethod
    async def reset(self, key: str) -> None:
        """Delete the bucket for ``key``."""
        pass

    @abc.abstractmethod
    async def clear(self) -> None:
        """Delete every bucket."""
        pass

    async def health_check(self) -> HealthCheckResult:
        return HealthCheckResult(
            healthy=True, backend_type=self.backend_type, namespace=self.namespace
        )


class CircuitBreakerStore(abc.ABC):
    """
    Per-key circuit state store.

    State changes go through :meth:`update`, which applies a pure
    transition function to the current snapshot as one atomic step.
    """

    backend_type = "abstract"

    @abc.abstractmethod
    async def load(self, key: str) -> CircuitSnapshot:
        """Current snapshot for ``key`` (a closed snapshot when unknown)."""
        pass

    @abc.abstractmethod
    async def update(
        self, key: str, transition: CircuitTransition[T]
    ) -> tuple[CircuitSnapshot, CircuitSnapshot, T]:
        """
        Atomically replace the snapshot for ``key``.

        ``transition`` receives the current snapshot and returns the new
        snapshot together with a result value. It must not block or await.

        Returns:
            Tuple of (before, after, result)
        """
        pass

    @abc.abstractmethod
    async def reset(self, key: str) -> None:
        """Forget the state for ``key``."""
        pass

    @abc.abstractmethod
    async def clear(self) -> None:
        """Forget every circuit."""
        pass


__all__ = [
    "CacheStore",
    "CircuitBreakerStore",
    "CircuitTransition",
    "HealthCheckResult",
    "RateLimitBucket",
    "RateLimitStore",
]
