# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Protocol definitions for transports and pluggable strategies."""

from .strategies import (
    Authenticator,
    BackoffStrategy,
    CacheKeyResolver,
    CircuitBreakerPolicy,
    IdGenerator,
    RetryDecider,
    RetryPolicy,
)
from .transport import (
    FulfilledCallback,
    PreparedCall,
    RejectedCallback,
    TransportProtocol,
)

__all__ = [
    "Authenticator",
    "BackoffStrategy",
    "CacheKeyResolver",
    "CircuitBreakerPolicy",
    "FulfilledCallback",
    "IdGenerator",
    "PreparedCall",
    "RejectedCallback",
    "RetryDecider",
    "RetryPolicy",
    "TransportProtocol",
]
