# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Tag-indexed response cache.

Responses are stored as records built by ``serialize_response``. Each tag
keeps an index (a de-duplicated list of member keys) under
``{prefix}_tags:{tag}``. Appends go through ``CacheStore.append_to_index``
so concurrent writers to the same tag never lose a member; invalidation
takes an index out with ``CacheStore.pop_index`` in one step.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from ..backends.base import CacheStore
from ..backends.memory import MemoryCacheStore
from ..observability.collector import MetricsCollector
from ..observability.constants import (
    CACHE_HITS_TOTAL,
    CACHE_INVALIDATIONS_TOTAL,
    CACHE_MISSES_TOTAL,
    CACHE_WRITES_TOTAL,
)
from ..types.request import Request
from ..types.response import Response
from .config import CacheConfig
from .keys import CacheKeyGenerator
from .serialization import is_response_record, restore_response, serialize_response

logger = logging.getLogger(__name__)


class ResponseCache:
    """
    Stores and replays responses for cacheable requests.

    Args:
        store: Backing key/value store (in-memory by default)
        config: Cache configuration
        key_generator: Key generator; built from ``config`` when omitted
        clock: Source of the ``cached_at`` timestamp
        metrics: Optional metrics collector
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        config: CacheConfig | None = None,
        key_generator: CacheKeyGenerator | None = None,
        clock: Callable[[], float] = time.time,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.config = config or CacheConfig()
        self._store = store if store is not None else MemoryCacheStore(clock=clock)
        self.keys = key_generator or CacheKeyGenerator(self.config)
        self._clock = clock
        self._metrics = metrics

    @property
    def store(self) -> CacheStore:
        return self._store

    def is_cacheable(self, request: Request) -> bool:
        """Method allowed, not marked no_cache, and cache settings present (or cache_by_default)."""
        if request.policy.no_cache:
            return False
        if request.method not in self.config.cacheable_methods:
            return False
        return request.policy.cache is not None or self.config.cache_by_default

    async def get(self, caller: str, request: Request) -> Response | None:
        """Replay the cached response for ``request``, or None."""
        if not self.is_cacheable(request):
            return None

        key = self.keys.generate(caller, request)
        record = await self._store.get(key)
        if not is_response_record(record):
            logger.debug(f"Cache miss for '{key}'")
            self._inc(CACHE_MISSES_TOTAL)
            return None

        logger.debug(f"Cache hit for '{key}'")
        self._inc(CACHE_HITS_TOTAL)
        return restore_response(record).with_request(request).mark_from_cache()

    async def put(self, caller: str, request: Request, response: Response) -> bool:
        """
        Store ``response`` for ``request`` and index it under its tags.

        Returns:
            Whether anything was written
        """
        if not self.is_cacheable(request):
            return False

        key = self.keys.generate(caller, request)
        ttl = self.keys.ttl(request)
        await self._store.set(key, serialize_response(response, self._clock()), ttl)
        for tag in self.keys.tags(request):
            await self._store.append_to_index(self.config.tag_key(tag), key)

        self._inc(CACHE_WRITES_TOTAL)
        logger.debug(f"Cached response for '{key}' (ttl={ttl}s)")
        return True

    async def forget(self, caller: str, request: Request) -> bool:
        key = self.keys.generate(caller, request)
        removed = await self._store.delete(key)
        if removed:
            self._inc(CACHE_INVALIDATIONS_TOTAL)
        return removed

    async def invalidate_tags(self, tags: Iterable[str]) -> int:
        """
        Take each tag's index out of the store and delete every entry it held.

        Returns:
            Number of entries that were removed
        """
        removed = 0
        for tag in tags:
            members = await self._store.pop_index(self.config.tag_key(tag))
            for key in members:
                if await self._store.delete(key):
                    removed += 1
            logger.debug(f"Invalidated tag '{tag}' ({len(members)} indexed keys)")
        if removed:
            self._inc(CACHE_INVALIDATIONS_TOTAL, removed)
        return removed

    async def invalidate_keys(self, keys: Iterable[str]) -> int:
        """Delete literal keys (the configured prefix is applied)."""
        removed = 0
        for key in keys:
            if await self._store.delete(f"{self.config.prefix}{key}"):
                removed += 1
        if removed:
            self._inc(CACHE_INVALIDATIONS_TOTAL, removed)
        return removed

    async def handle_invalidation(self, request: Request, response: Response) -> int:
        """Apply the request's InvalidatesCache settings after a successful call."""
        invalidates = request.policy.invalidates
        if invalidates is None or not response.successful:
            return 0
        removed = await self.invalidate_tags(invalidates.tags)
        removed += await self.invalidate_keys(invalidates.keys)
        return removed

    async def flush(self) -> bool:
        """Clear the entire backing store, tag indexes included."""
        logger.debug("Flushing response cache")
        return await self._store.clear()

    def _inc(self, name: str, value: int = 1) -> None:
        if self._metrics is not None:
            self._metrics.inc_counter(name, value)


__all__ = ["ResponseCache"]
