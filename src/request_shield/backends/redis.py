# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Redis stores for request-shield.

This module provides shared stores that are safe across processes:

- RedisCacheStore: JSON-encoded cache records with native key expiry and a
  Lua-atomic tag index append and a GETDEL index pop
- RedisRateLimitStore: fixed-window buckets updated by a single Lua script
  per attempt, with the bucket TTL tied to the remaining window

Lua scripts live in the ``lua/`` directory next to this module and are
loaded once per process, then invoked through EVALSHA. A NoScriptError
(Redis restarted or failed over) triggers one transparent reload.
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, ClassVar, NoReturn

from redis.asyncio import Redis
from redis.exceptions import (
    ConnectionError,
    NoScriptError,
    RedisError,
    TimeoutError,
)

from ..exceptions import BackendConnectionError, BackendOperationError
from .base import CacheStore, HealthCheckResult, RateLimitBucket, RateLimitStore

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379"


class _RedisScripts:
    """
    Connection and Lua script handling shared by the Redis stores.

    Subclasses list the scripts they use in ``SCRIPT_NAMES``.
    """

    SCRIPT_NAMES: ClassVar[tuple[str, ...]] = ()

    # Class-level Lua sources loaded from files
    _lua_scripts: ClassVar[dict[str, str]] = {}

    @classmethod
    def _load_lua_scripts(cls) -> None:
        """Load Lua script sources from files at class level."""
        lua_dir = Path(__file__).parent / "lua"
        for script_name in cls.SCRIPT_NAMES:
            if script_name in cls._lua_scripts:
                continue
            script_path = lua_dir / f"{script_name}.lua"
            if script_path.exists():
                cls._lua_scripts[script_name] = script_path.read_text(encoding="utf-8")
            else:
                logger.warning(f"Lua script not found: {script_path}")

    def _init_connection(
        self,
        redis_url: str | None,
        redis_client: Any | None,
        max_connections: int,
    ) -> None:
        # Use env var as fallback, then hardcoded default
        self.redis_url = redis_url or os.environ.get("REDIS_URL") or DEFAULT_REDIS_URL
        self.max_connections = max_connections
        self._redis: Any | None = redis_client
        self._owned_redis = redis_client is None
        self._connected = redis_client is not None
        self._script_shas: dict[str, str] = {}

    async def _ensure_connected(self) -> Any:
        """Return a live client, creating one from ``redis_url`` on first use."""
        if self._redis is not None and self._connected:
            return self._redis
        try:
            self._redis = Redis.from_url(
                self.redis_url,
                decode_responses=True,
                max_connections=self.max_connections,
            )
            await self._redis.ping()
            self._connected = True
            logger.debug(f"Connected to Redis at {self.redis_url}")
            return self._redis
        except (ConnectionError, TimeoutError) as e:
            self._connected = False
            logger.error(f"Failed to connect to Redis at {self.redis_url}: {e}")
            raise BackendConnectionError(
                f"Cannot connect to Redis at {self.redis_url}: {e}"
            ) from e

    async def _load_scripts(self) -> None:
        """Load Lua scripts into Redis."""
        if not self._redis:
            raise RuntimeError("Redis client not initialized")

        self.__class__._load_lua_scripts()

        for script_name in self.SCRIPT_NAMES:
            self._script_shas[script_name] = await self._redis.script_load(
                self._lua_scripts[script_name]
            )

    async def _evalsha_with_reload(
        self,
        redis_client: Any,
        script_name: str,
        num_keys: int,
        *args: Any,
    ) -> Any:
        """
        Execute EVALSHA with automatic script reload on NoScriptError.

        Args:
            redis_client: The Redis client to use
            script_name: Name of the Lua script
            num_keys: Number of KEYS arguments
            *args: Keys and arguments for the script

        Returns:
            Result from evalsha
        """
        script_sha = self._script_shas.get(script_name)
        if not script_sha:
            await self._load_scripts()
            script_sha = self._script_shas[script_name]

        try:
            return await redis_client.evalsha(script_sha, num_keys, *args)
        except NoScriptError:
            logger.warning(
                f"Script '{script_name}' not found in Redis (SHA: {script_sha}). "
                f"Reloading all Lua scripts..."
            )
            self._script_shas.clear()
            await self._load_scripts()

            # Retry once with the new SHA
            new_sha = self._script_shas[script_name]
            logger.info(f"Scripts reloaded. Retrying with new SHA: {new_sha}")
            return await redis_client.evalsha(new_sha, num_keys, *args)

    def _raise_backend_error(self, operation: str, error: RedisError) -> NoReturn:
        logger.error(f"Redis error during {operation}: {error}")
        if isinstance(error, (ConnectionError, TimeoutError)):
            self._connected = False
            raise BackendConnectionError(
                f"Redis connection failed during {operation}: {error}"
            ) from error
        raise BackendOperationError(
            f"Redis {operation} failed: {error}"
        ) from error

    async def _delete_matching(self, pattern: str) -> int:
        """Delete keys matching ``pattern`` using SCAN, never KEYS."""
        redis_client = await self._ensure_connected()
        deleted = 0
        batch: list[str] = []
        async for key in redis_client.scan_iter(match=pattern, count=100):
            batch.append(key)
            if len(batch) >= 100:
                deleted += await redis_client.delete(*batch)
                batch = []
        if batch:
            deleted += await redis_client.delete(*batch)
        return deleted

    async def _health_check(self, backend_type: str, namespace: str) -> HealthCheckResult:
        try:
            redis_client = await self._ensure_connected()
            test_key = f"{namespace}:health_check_{int(time.time())}"
            await redis_client.set(test_key, "test", ex=60)
            result = await redis_client.get(test_key)
            await redis_client.delete(test_key)
            info = await redis_client.info()
            return HealthCheckResult(
                healthy=result == "test",
                backend_type=backend_type,
                namespace=namespace,
                metadata={
                    "redis_url": self.redis_url,
                    "connected": self._connected,
                    "redis_version": info.get("redis_version"),
                    "used_memory": info.get("used_memory_human"),
                },
            )
        except (BackendConnectionError, RedisError) as e:
            return HealthCheckResult(
                healthy=False,
                backend_type=backend_type,
                namespace=namespace,
                error=str(e),
            )

    async def aclose(self) -> None:
        """Close the client if this store created it."""
        if self._redis is not None and self._owned_redis:
            try:
                await self._redis.aclose()
            except RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")
            finally:
                self._redis = None
                self._connected = False


class RedisCacheStore(_RedisScripts, CacheStore):
    """
    Redis-backed cache store.

    Values are stored as JSON strings under ``{namespace}:{key}`` and expire
    through Redis' own key TTL. Tag indexes are JSON lists updated by the
    ``tag_index_append`` script, so concurrent writers never lose a member.
    """

    backend_type = "redis"
    SCRIPT_NAMES: ClassVar[tuple[str, ...]] = ("tag_index_append",)

    def __init__(
        self,
        redis_url: str | None = None,
        redis_client: Any | None = None,
        namespace: str = "request_shield:cache",
        max_connections: int = 10,
    ) -> None:
        """
        Initialize the Redis cache store.

        Args:
            redis_url: Redis connection URL. If not provided, falls back to the
                REDIS_URL environment variable, then to "redis://localhost:6379".
            redis_client: Optional pre-configured client (decode_responses=True)
            namespace: Prefix for every key written by this store
            max_connections: Maximum connections in the pool
        """
        super().__init__(namespace)
        self._init_connection(redis_url, redis_client, max_connections)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Any | None:
        try:
            redis_client = await self._ensure_connected()
            raw = await redis_client.get(self._key(key))
        except RedisError as e:
            self._raise_backend_error("get", e)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache value for '{key}'")
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        payload = json.dumps(value)
        try:
            redis_client = await self._ensure_connected()
            if ttl:
                await redis_client.set(self._key(key), payload, ex=ttl)
            else:
                await redis_client.set(self._key(key), payload)
        except RedisError as e:
            self._raise_backend_error("set", e)

    async def delete(self, key: str) -> bool:
        try:
            redis_client = await self._ensure_connected()
            return bool(await redis_client.delete(self._key(key)))
        except RedisError as e:
            self._raise_backend_error("delete", e)

    async def clear(self) -> bool:
        try:
            deleted = await self._delete_matching(f"{self.namespace}:*")
        except RedisError as e:
            self._raise_backend_error("clear", e)
        logger.debug(f"Cleared {deleted} cache keys in namespace '{self.namespace}'")
        return True

    async def append_to_index(
        self, index_key: str, member: str, ttl: int | None = None
    ) -> list[str]:
        try:
            redis_client = await self._ensure_connected()
            raw = await self._evalsha_with_reload(
                redis_client,
                "tag_index_append",
                1,
                self._key(index_key),
                member,
                ttl or 0,
            )
        except RedisError as e:
            self._raise_backend_error("append_to_index", e)
        return list(json.loads(raw))

    async def pop_index(self, index_key: str) -> list[str]:
        try:
            redis_client = await self._ensure_connected()
            raw = await redis_client.getdel(self._key(index_key))
        except RedisError as e:
            self._raise_backend_error("pop_index", e)
        if raw is None:
            return []
        try:
            members = json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable tag index '{index_key}'")
            return []
        return list(members) if isinstance(members, list) else []

    async def health_check(self) -> HealthCheckResult:
        return await self._health_check(self.backend_type, self.namespace)


class RedisRateLimitStore(_RedisScripts, RateLimitStore):
    """
    Redis-backed fixed-window counters, safe across processes.

    Each bucket is a hash ``{count, window_start, window_size}`` whose TTL
    equals the time left in its window, so stale buckets expire on their
    own. Time comes from the injected clock rather than the Redis server
    clock, matching MemoryRateLimitStore.
    """

    backend_type = "redis"
    SCRIPT_NAMES: ClassVar[tuple[str, ...]] = ("fixed_window_attempt",)

    def __init__(
        self,
        redis_url: str | None = None,
        redis_client: Any | None = None,
        namespace: str = "request_shield:ratelimit",
        max_connections: int = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the Redis rate limit store.

        Args:
            redis_url: Redis connection URL. If not provided, falls back to the
                REDIS_URL environment variable, then to "redis://localhost:6379".
            redis_client: Optional pre-configured client (decode_responses=True)
            namespace: Prefix for bucket keys
            max_connections: Maximum connections in the pool
            clock: Source of the current unix time
        """
        super().__init__(namespace)
        self._init_connection(redis_url, redis_client, max_connections)
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def attempt_with_state(
        self, key: str, limit: int, per_seconds: int
    ) -> tuple[bool, RateLimitBucket]:
        try:
            redis_client = await self._ensure_connected()
            result = await self._evalsha_with_reload(
                redis_client,
                "fixed_window_attempt",
                1,
                self._key(key),
                limit,
                per_seconds,
                repr(self._clock()),
            )
        except RedisError as e:
            self._raise_backend_error("attempt", e)
        allowed = int(result[0]) == 1
        if not allowed:
            logger.debug(f"Rate limit bucket '{key}' full ({result[1]}/{limit})")
        bucket = RateLimitBucket(
            count=int(result[1]),
            window_start=float(result[2]),
            window_size=float(result[3]),
        )
        return allowed, bucket

    async def _bucket(self, key: str) -> tuple[int, float] | None:
        try:
            redis_client = await self._ensure_connected()
            count, window_start, window_size = await redis_client.hmget(
                self._key(key), "count", "window_start", "window_size"
            )
        except RedisError as e:
            self._raise_backend_error("read", e)
        if count is None or window_start is None or window_size is None:
            return None
        reset_at = float(window_start) + float(window_size)
        if self._clock() >= reset_at:
            return None
        return int(count), reset_at

    async def get_count(self, key: str) -> int:
        bucket = await self._bucket(key)
        return bucket[0] if bucket else 0

    async def get_reset_time(self, key: str) -> float | None:
        bucket = await self._bucket(key)
        return bucket[1] if bucket else None

    async def reset(self, key: str) -> None:
        try:
            redis_client = await self._ensure_connected()
            await redis_client.delete(self._key(key))
        except RedisError as e:
            self._raise_backend_error("reset", e)

    async def clear(self) -> None:
        try:
            deleted = await self._delete_matching(f"{self.namespace}:*")
        except RedisError as e:
            self._raise_backend_error("clear", e)
        logger.debug(f"Cleared {deleted} rate limit buckets in '{self.namespace}'")

    async def health_check(self) -> HealthCheckResult:
        return await self._health_check(self.backend_type, self.namespace)


__all__ = ["DEFAULT_REDIS_URL", "RedisCacheStore", "RedisRateLimitStore"]
