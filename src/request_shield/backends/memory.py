# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
In-memory stores for request-shield.

These stores keep all state in process-local dicts. They are the default
for single-process applications and for tests, and are NOT shared across
processes.

Locking:
    Every read-modify-write step runs under the ``threading.Lock`` that
    guards its key. Keys map onto a fixed set of lock stripes, so the lock
    table never grows with the number of keys. Critical sections never
    await, so the same stores are correct both in a single event loop
    (where the locks are uncontended) and when several threads each drive
    their own loop against a shared store.

Expiry:
    Entries with a TTL and rate limit buckets are tracked in an expiration
    heap. Each write first sweeps whatever has expired, so keys that are
    never read again do not accumulate.
"""

import copy
import heapq
import logging
import threading
import time
from collections.abc import Callable
from typing import Any, TypeVar

from ..types.circuit import CircuitSnapshot
from .base import (
    CacheStore,
    CircuitBreakerStore,
    CircuitTransition,
    RateLimitBucket,
    RateLimitStore,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


LOCK_STRIPES = 64


class _KeyedLocks:
    """Maps each key onto one of a fixed number of locks."""

    def __init__(self, stripes: int = LOCK_STRIPES) -> None:
        self._locks = [threading.Lock() for _ in range(stripes)]

    def __call__(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def __len__(self) -> int:
        return len(self._locks)


class _ExpirationHeap:
    """
    Min-heap of ``(expiry, key)`` pairs for O(log n) expiry sweeps.

    Uses lazy deletion: a popped pair may refer to a key that was since
    deleted or rewritten with a new expiry, so callers check the pair
    against their own storage before removing anything.
    """

    def __init__(self) -> None:
        self._heap: list[tuple[float, str]] = []
        self._lock = threading.Lock()

    def track(self, key: str, expiry: float) -> None:
        with self._lock:
            heapq.heappush(self._heap, (expiry, key))

    def pop_expired(self, now: float) -> list[tuple[float, str]]:
        expired: list[tuple[float, str]] = []
        with self._lock:
            while self._heap and self._heap[0][0] <= now:
                expired.append(heapq.heappop(self._heap))
        return expired

    def clear(self) -> None:
        with self._lock:
            self._heap.clear()

    def __len__(self) -> int:
        return len(self._heap)


class MemoryCacheStore(CacheStore):
    """
    Dict-backed cache store with TTL enforced on read.

    Values are deep-copied on the way in and out so callers can never
    mutate a stored record in place. Expired entries are also swept on
    every write.
    """

    backend_type = "memory"

    def __init__(
        self,
        namespace: str = "request_shield_memory",
        clock: Clock = time.time,
    ) -> None:
        super().__init__(namespace)
        self._clock = clock
        # key -> (value, expiry timestamp or None)
        self._data: dict[str, tuple[Any, float | None]] = {}
        self._locks = _KeyedLocks()
        self._expirations = _ExpirationHeap()

        logger.debug(f"Initialized MemoryCacheStore with namespace '{namespace}'")

    def _expiry(self, ttl: int | None) -> float | None:
        if not ttl:
            return None
        return self._clock() + ttl

    def _live(self, key: str) -> Any | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expiry = entry
        if expiry is not None and self._clock() >= expiry:
            self._data.pop(key, None)
            return None
        return value

    def _write(self, key: str, value: Any, expiry: float | None) -> None:
        # Caller holds the key's lock
        previous = self._data.get(key)
        self._data[key] = (value, expiry)
        if expiry is not None and (previous is None or previous[1] != expiry):
            self._expirations.track(key, expiry)

    def _sweep(self) -> int:
        """
        Remove entries whose expiry has passed.

        Takes key locks itself, so it must never run while one is held.
        """
        removed = 0
        for expiry, key in self._expirations.pop_expired(self._clock()):
            with self._locks(key):
                entry = self._data.get(key)
                # Skip keys deleted or rewritten since they were tracked
                if entry is not None and entry[1] == expiry:
                    del self._data[key]
                    removed += 1
        if removed:
            logger.debug(f"Swept {removed} expired cache entries")
        return removed

    async def get(self, key: str) -> Any | None:
        with self._locks(key):
            value = self._live(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        self._sweep()
        stored = copy.deepcopy(value)
        with self._locks(key):
            self._write(key, stored, self._expiry(ttl))

    async def delete(self, key: str) -> bool:
        with self._locks(key):
            existed = self._live(key) is not None
            self._data.pop(key, None)
        return existed

    async def clear(self) -> bool:
        self._data.clear()
        self._expirations.clear()
        return True

    async def append_to_index(
        self, index_key: str, member: str, ttl: int | None = None
    ) -> list[str]:
        self._sweep()
        with self._locks(index_key):
            current = self._live(index_key)
            members = list(current) if isinstance(current, list) else []
            if member not in members:
                members.append(member)
            expiry = self._expiry(ttl)
            if expiry is None and index_key in self._data:
                # Keep an existing expiry when no new TTL is given
                expiry = self._data[index_key][1]
            self._write(index_key, members, expiry)
        return list(members)

    async def pop_index(self, index_key: str) -> list[str]:
        with self._locks(index_key):
            current = self._live(index_key)
            self._data.pop(index_key, None)
        return list(current) if isinstance(current, list) else []

    def __len__(self) -> int:
        return len(self._data)


class MemoryRateLimitStore(RateLimitStore):
    """
    Process-local fixed-window counters.

    An expired bucket is replaced by the next attempt on its key, reads of
    an expired bucket report an empty window, and buckets nobody touches
    again are swept once their window has passed.
    """

    backend_type = "memory"

    def __init__(
        self,
        namespace: str = "request_shield:ratelimit",
        clock: Clock = time.time,
    ) -> None:
        super().__init__(namespace)
        self._clock = clock
        self._buckets: dict[str, RateLimitBucket] = {}
        self._locks = _KeyedLocks()
        self._expirations = _ExpirationHeap()

    def _sweep(self) -> int:
        removed = 0
        for reset_at, key in self._expirations.pop_expired(self._clock()):
            with self._locks(key):
                bucket = self._buckets.get(key)
                if bucket is not None and bucket.reset_at == reset_at:
                    del self._buckets[key]
                    removed += 1
        if removed:
            logger.debug(f"Swept {removed} expired rate limit buckets")
        return removed

    async def attempt_with_state(
        self, key: str, limit: int, per_seconds: int
    ) -> tuple[bool, RateLimitBucket]:
        self._sweep()
        with self._locks(key):
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None or bucket.expired(now):
                if bucket is not None:
                    logger.debug(f"Rate limit window for '{key}' expired, starting new")
                bucket = RateLimitBucket(
                    count=0, window_start=now, window_size=per_seconds
                )
                self._expirations.track(key, bucket.reset_at)
            if bucket.count >= limit:
                self._buckets[key] = bucket
                return False, bucket
            bucket = RateLimitBucket(
                count=bucket.count + 1,
                window_start=bucket.window_start,
                window_size=bucket.window_size,
            )
            self._buckets[key] = bucket
            return True, bucket

    def _active(self, key: str) -> RateLimitBucket | None:
        bucket = self._buckets.get(key)
        if bucket is None or bucket.expired(self._clock()):
            return None
        return bucket

    async def get_count(self, key: str) -> int:
        with self._locks(key):
            bucket = self._active(key)
        return bucket.count if bucket else 0

    async def get_reset_time(self, key: str) -> float | None:
        with self._locks(key):
            bucket = self._active(key)
        return bucket.reset_at if bucket else None

    async def reset(self, key: str) -> None:
        with self._locks(key):
            self._buckets.pop(key, None)

    async def clear(self) -> None:
        self._buckets.clear()
        self._expirations.clear()

    def __len__(self) -> int:
        return len(self._buckets)


class MemoryCircuitStore(CircuitBreakerStore):
    """Process-local circuit snapshots with per-key atomic transitions."""

    backend_type = "memory"

    def __init__(self) -> None:
        self._snapshots: dict[str, CircuitSnapshot] = {}
        self._locks = _KeyedLocks()

    async def load(self, key: str) -> CircuitSnapshot:
        with self._locks(key):
            return self._snapshots.get(key, CircuitSnapshot())

    async def update(
        self, key: str, transition: CircuitTransition[T]
    ) -> tuple[CircuitSnapshot, CircuitSnapshot, T]:
        with self._locks(key):
            before = self._snapshots.get(key, CircuitSnapshot())
            after, result = transition(before)
            self._snapshots[key] = after
        return before, after, result

    async def reset(self, key: str) -> None:
        with self._locks(key):
            self._snapshots.pop(key, None)

    async def clear(self) -> None:
        self._snapshots.clear()

    def keys(self) -> list[str]:
        return list(self._snapshots)


__all__ = [
    "Clock",
    "MemoryCacheStore",
    "MemoryCircuitStore",
    "MemoryRateLimitStore",
]
