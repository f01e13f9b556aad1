# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Bounded-concurrency batch dispatch."""

from .dispatcher import (
    DEFAULT_POOL_CONCURRENCY,
    ErrorCallback,
    Pool,
    PoolInput,
    PoolKey,
    ResponseCallback,
)

__all__ = [
    "DEFAULT_POOL_CONCURRENCY",
    "ErrorCallback",
    "Pool",
    "PoolInput",
    "PoolKey",
    "ResponseCallback",
]
