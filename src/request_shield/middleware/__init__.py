# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Middleware pipeline and the built-in layers."""

from .builtin import (
    HeaderMiddleware,
    LoggingMiddleware,
    TimingMiddleware,
    TracingMiddleware,
)
from .pipeline import Middleware, MiddlewareLike, MiddlewarePipeline, Next
from .resilience import (
    CacheMiddleware,
    CircuitBreakerMiddleware,
    IdempotencyMiddleware,
    RateLimitMiddleware,
    RetryMiddleware,
)

__all__ = [
    "CacheMiddleware",
    "CircuitBreakerMiddleware",
    "HeaderMiddleware",
    "IdempotencyMiddleware",
    "LoggingMiddleware",
    "Middleware",
    "MiddlewareLike",
    "MiddlewarePipeline",
    "Next",
    "RateLimitMiddleware",
    "RetryMiddleware",
    "TimingMiddleware",
    "TracingMiddleware",
]
