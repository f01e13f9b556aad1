# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Idempotency keys for mutation requests.

A key is attached to the request as a header. When the call succeeds its
response is stored under the key, and a later call carrying the same key
is answered from the store (marked ``was_idempotent_replay``) instead of
being sent again.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..backends.base import CacheStore
from ..backends.memory import MemoryCacheStore
from ..caching.serialization import (
    is_response_record,
    restore_response,
    serialize_response,
)
from ..protocols.strategies import IdGenerator
from ..types.request import Request
from ..types.response import Response
from .ids import UuidKeyGenerator

logger = logging.getLogger(__name__)

DEFAULT_HEADER = "Idempotency-Key"
DEFAULT_TTL = 86_400  # 24 hours
KEY_PREFIX = "request_shield:idempotency:"


class IdempotencyManager:
    """
    Attaches idempotency keys and replays stored responses.

    Args:
        store: Where responses are kept (in-memory by default)
        header_name: Header carrying the key
        ttl: Seconds a stored response stays replayable
        key_generator: Source of new keys
        clock: Source of the stored timestamp
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        header_name: str = DEFAULT_HEADER,
        ttl: int = DEFAULT_TTL,
        key_generator: IdGenerator | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store if store is not None else MemoryCacheStore(clock=clock)
        self.header_name = header_name
        self.ttl = ttl
        self.key_generator = key_generator or UuidKeyGenerator()
        self._clock = clock

    def generate_key(self, request: Request | None = None) -> str:
        return self.key_generator.generate(request)

    def add_to_request(
        self,
        request: Request,
        key: str | None = None,
        header_name: str | None = None,
    ) -> Request:
        """Attach ``key`` (or the request's own, or a fresh one) as a header."""
        key = key or request.idempotency_key or self.generate_key(request)
        return request.with_idempotency_key(key).with_header(
            header_name or self.header_name, key
        )

    async def get_cached_response(self, key: str) -> Response | None:
        record = await self.store.get(self._cache_key(key))
        if not is_response_record(record):
            return None
        logger.debug(f"Replaying stored response for idempotency key '{key}'")
        return (
            restore_response(record).with_idempotency_key(key).mark_idempotent_replay()
        )

    async def cache_response(self, key: str, response: Response) -> None:
        await self.store.set(
            self._cache_key(key), serialize_response(response, self._clock()), self.ttl
        )

    async def invalidate(self, key: str) -> bool:
        return await self.store.delete(self._cache_key(key))

    @staticmethod
    def is_replay(response: Response) -> bool:
        return response.was_idempotent_replay

    def _cache_key(self, key: str) -> str:
        return f"{KEY_PREFIX}{key}"


__all__ = ["DEFAULT_HEADER", "DEFAULT_TTL", "KEY_PREFIX", "IdempotencyManager"]
