# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Value types for the request-shield library.

Request and Response are immutable; RequestPolicy and its settings records
describe which resilience behaviors apply to a request.
"""

from .circuit import CircuitSnapshot, CircuitState
from .policy import (
    CacheSettings,
    CircuitBreakerSettings,
    IdempotencySettings,
    InvalidatesCache,
    RateLimitSettings,
    RequestPolicy,
    RetrySettings,
    ThrowOnError,
)
from .request import FORM_CONTENT_TYPE, JSON_CONTENT_TYPE, Request
from .response import RateLimitInfo, Response

__all__ = [
    "FORM_CONTENT_TYPE",
    "JSON_CONTENT_TYPE",
    "CacheSettings",
    "CircuitBreakerSettings",
    "CircuitSnapshot",
    "CircuitState",
    "IdempotencySettings",
    "InvalidatesCache",
    "RateLimitInfo",
    "RateLimitSettings",
    "Request",
    "RequestPolicy",
    "Response",
    "RetrySettings",
    "ThrowOnError",
]
