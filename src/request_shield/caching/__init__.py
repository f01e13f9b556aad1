# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Response caching: configuration, key derivation and the tag-indexed cache."""

from .cache import ResponseCache
from .config import MIN_KEY_LENGTH, CacheConfig
from .keys import KEY_DELIMITER, CacheKeyGenerator, canonical_json
from .serialization import is_response_record, restore_response, serialize_response

__all__ = [
    "KEY_DELIMITER",
    "MIN_KEY_LENGTH",
    "CacheConfig",
    "CacheKeyGenerator",
    "ResponseCache",
    "canonical_json",
    "is_response_record",
    "restore_response",
    "serialize_response",
]
