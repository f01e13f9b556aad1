# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Cache key derivation.

The default key for a request is::

    {prefix}{caller}:{METHOD}:{endpoint}:{hash(query)}:{hash(body)}[:{hash(headers)}]

Query, body and header sets are hashed from a canonical JSON encoding with
sorted mapping keys, so two mappings holding the same members in a
different insertion order produce the same key. Sequences keep their order.
Header names are compared case-insensitively.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

from ..exceptions import CacheKeyError
from ..protocols.strategies import CacheKeyResolver
from ..templating import render_key_template
from ..types.request import Request
from .config import CacheConfig

logger = logging.getLogger(__name__)

KEY_DELIMITER = ":"


def canonical_json(value: Any) -> str:
    """Deterministic JSON encoding used as hash input."""
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


class CacheKeyGenerator:
    """
    Derives cache keys, tags and TTLs for requests.

    Resolution order for the key:

    1. ``CacheSettings.key_resolver``: a CacheKeyResolver, or any callable
       taking the request (such as a bound accessor method); its result must
       be a string and is used verbatim
    2. ``CacheSettings.key_template``: rendered from ``Request.key_values``
    3. the default key built from the request shape
    """

    def __init__(self, config: CacheConfig | None = None) -> None:
        self.config = config or CacheConfig()

    def hash(self, value: Any) -> str:
        digest = hashlib.new(self.config.hash_algorithm)
        digest.update(canonical_json(value).encode("utf-8"))
        return digest.hexdigest()

    def generate(self, caller: str, request: Request) -> str:
        """Return the full (prefixed, possibly truncated) key for ``request``."""
        key = self._custom_key(request)
        if key is None:
            key = self._default_key(caller, request)
        return self._truncate(f"{self.config.prefix}{key}")

    def tags(self, request: Request) -> list[str]:
        settings = request.policy.cache
        return list(settings.tags) if settings else []

    def ttl(self, request: Request) -> int:
        settings = request.policy.cache
        if settings is not None and settings.ttl is not None:
            return settings.ttl
        return self.config.default_ttl

    def _custom_key(self, request: Request) -> str | None:
        settings = request.policy.cache
        if settings is None:
            return None

        resolver = settings.key_resolver
        if resolver is not None:
            if isinstance(resolver, CacheKeyResolver):
                key = resolver.resolve(request)
            else:
                key = resolver(request)
            if not isinstance(key, str):
                raise CacheKeyError.method_must_return_string()
            return key

        if settings.key_template is not None:
            return render_key_template(settings.key_template, request.key_values)

        return None

    def _default_key(self, caller: str, request: Request) -> str:
        parts = [
            caller,
            request.method,
            request.endpoint,
            self.hash(dict(request.query)),
            self.hash(request.body),
        ]
        if self.config.include_headers:
            headers = {name.lower(): value for name, value in request.headers.items()}
            parts.append(self.hash(headers))
        return KEY_DELIMITER.join(parts)

    def _truncate(self, key: str) -> str:
        max_length = self.config.max_key_length
        if max_length is None or len(key) <= max_length:
            return key
        suffix = hashlib.md5(key.encode("utf-8")).hexdigest()
        truncated = f"{key[: max_length - 33]}_{suffix}"
        logger.debug(f"Truncated cache key to {len(truncated)} characters")
        return truncated


__all__ = ["KEY_DELIMITER", "CacheKeyGenerator", "canonical_json"]
