# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Configuration for the response cache and its key generator."""

import hashlib
from dataclasses import dataclass

from ..exceptions import ConfigurationError

# prefix + "_" + 32 hex digits
MIN_KEY_LENGTH = 34


@dataclass
class CacheConfig:
    """
    Configuration for response caching.

    Changing any field changes the keys produced for existing requests, so
    entries written under an older configuration simply stop being found.
    """

    hash_algorithm: str = "md5"
    """hashlib algorithm used to hash query, body and header sets."""

    max_key_length: int | None = None
    """Keys longer than this are truncated and suffixed with an MD5 digest."""

    include_headers: bool = False
    """Whether request headers participate in the default key."""

    prefix: str = ""
    """Namespace prepended to every key and tag index."""

    default_ttl: int = 300
    """TTL in seconds for requests whose cache settings declare none."""

    cacheable_methods: tuple[str, ...] = ("GET", "HEAD")
    """HTTP methods whose responses may be cached."""

    cache_by_default: bool = False
    """Cache requests that declare no cache settings (still subject to method and no_cache)."""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if (
            self.hash_algorithm not in hashlib.algorithms_available
            or self.hash_algorithm.startswith("shake_")
        ):
            raise ConfigurationError(
                f"hash_algorithm '{self.hash_algorithm}' is not available"
            )
        if self.max_key_length is not None and self.max_key_length < MIN_KEY_LENGTH:
            raise ConfigurationError(
                f"max_key_length must be at least {MIN_KEY_LENGTH}"
            )
        if self.default_ttl < 0:
            raise ConfigurationError("default_ttl must not be negative")
        self.cacheable_methods = tuple(m.upper() for m in self.cacheable_methods)

    def tag_key(self, tag: str) -> str:
        """Store key of the index for ``tag``."""
        return f"{self.prefix}_tags:{tag}"


__all__ = ["MIN_KEY_LENGTH", "CacheConfig"]
