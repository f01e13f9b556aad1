# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Idempotency keys and identifier generation."""

from .idempotency import DEFAULT_HEADER, DEFAULT_TTL, KEY_PREFIX, IdempotencyManager
from .ids import HexIdGenerator, UuidKeyGenerator

__all__ = [
    "DEFAULT_HEADER",
    "DEFAULT_TTL",
    "KEY_PREFIX",
    "HexIdGenerator",
    "IdempotencyManager",
    "UuidKeyGenerator",
]
