# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Resolved per-request policy records.

Each request carries a RequestPolicy describing which resilience behaviors
apply to it. The policy is resolved once when the request is built and is
read, never mutated, by the cache, rate limiter, retry handler, and circuit
breaker.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Literal

from ..exceptions import ConfigurationError

if TYPE_CHECKING:
    from ..protocols.strategies import (
        BackoffStrategy,
        CacheKeyResolver,
        CircuitBreakerPolicy,
        RetryDecider,
        RetryPolicy,
    )
    from .request import Request
    from .response import Response

    KeyResolverLike = CacheKeyResolver | Callable[[Request], Any]

BackoffName = Literal["linear", "exponential", "fixed"]
CircuitCallback = Callable[[str], Any]


@dataclass(frozen=True)
class CacheSettings:
    """
    Caching behavior for a cacheable request.

    Attributes:
        ttl: Seconds to keep the entry; falls back to CacheConfig.default_ttl
        tags: Tags used for bulk invalidation
        key_template: Template such as "user:{user_id}" rendered from
            Request.key_values
        key_resolver: Object with resolve(request) or a plain callable that
            returns the key verbatim; takes precedence over key_template
    """

    ttl: int | None = None
    tags: tuple[str, ...] = ()
    key_template: str | None = None
    key_resolver: KeyResolverLike | None = None

    def __post_init__(self) -> None:
        if self.ttl is not None and self.ttl < 0:
            raise ConfigurationError("cache ttl must not be negative")
        object.__setattr__(self, "tags", tuple(self.tags))


@dataclass(frozen=True)
class InvalidatesCache:
    """Tags and literal keys dropped after a successful mutation."""

    tags: tuple[str, ...] = ()
    keys: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", tuple(self.tags))
        object.__setattr__(self, "keys", tuple(self.keys))


@dataclass(frozen=True)
class RateLimitSettings:
    """
    Fixed-window limit for a request.

    Attributes:
        requests: Requests allowed per window
        per_seconds: Window length in seconds
        key: Optional key template; defaults to the caller name
        retry: Wait and retry instead of raising when the window is full
        max_retries: Retries allowed when retry is enabled
        backoff: "linear", "exponential", "fixed", or a BackoffStrategy
    """

    requests: int
    per_seconds: int
    key: str | None = None
    retry: bool = False
    max_retries: int = 3
    backoff: BackoffName | BackoffStrategy = "exponential"

    def __post_init__(self) -> None:
        if self.requests < 1:
            raise ConfigurationError("rate limit requests must be at least 1")
        if self.per_seconds < 1:
            raise ConfigurationError("rate limit per_seconds must be at least 1")
        if self.max_retries < 0:
            raise ConfigurationError("rate limit max_retries must not be negative")
        if isinstance(self.backoff, str) and self.backoff not in (
            "linear",
            "exponential",
            "fixed",
        ):
            raise ConfigurationError(
                "backoff must be 'linear', 'exponential', 'fixed' or a strategy"
            )


@dataclass(frozen=True)
class RetrySettings:
    """
    Retry behavior for failed calls.

    Delays are in milliseconds. ``times`` counts every attempt including
    the first one.
    """

    times: int = 3
    delay: int = 100
    multiplier: float = 2.0
    max_delay: int = 30000
    status_codes: frozenset[int] | None = None
    exceptions: tuple[type[BaseException], ...] | None = None
    decider: RetryDecider | Callable[..., bool] | None = None
    respect_retry_after: bool = True

    def __post_init__(self) -> None:
        if self.times < 1:
            raise ConfigurationError("retry times must be at least 1")
        if self.delay < 0:
            raise ConfigurationError("retry delay must not be negative")
        if self.multiplier < 1.0:
            raise ConfigurationError("retry multiplier must be at least 1.0")
        if self.max_delay < self.delay:
            raise ConfigurationError("retry max_delay must be >= delay")
        if self.status_codes is not None:
            object.__setattr__(self, "status_codes", frozenset(self.status_codes))
        if self.exceptions is not None:
            object.__setattr__(self, "exceptions", tuple(self.exceptions))

    @classmethod
    def from_policy(cls, policy: RetryPolicy) -> RetrySettings:
        """Build settings from a reusable retry policy object."""
        return cls(
            times=policy.times,
            delay=policy.delay,
            multiplier=policy.multiplier,
            max_delay=policy.max_delay,
            status_codes=policy.status_codes,
            exceptions=policy.exceptions,
            decider=policy.should_retry,
        )


@dataclass(frozen=True)
class CircuitBreakerSettings:
    """
    Thresholds and windows for one circuit.

    Time values are in seconds. When both failure_percentage and
    minimum_requests are set the percentage policy trips the circuit;
    otherwise the failure count policy does.
    """

    failure_threshold: int = 5
    reset_timeout: float = 30
    half_open_requests: int = 3
    failure_window: float = 60
    success_threshold: int = 1
    failure_percentage: float | None = None
    minimum_requests: int | None = None
    key: str | None = None
    failure_condition: Callable[[Response], bool] | None = None
    on_open: CircuitCallback | None = None
    on_close: CircuitCallback | None = None
    on_half_open: CircuitCallback | None = None

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ConfigurationError("failure_threshold must be at least 1")
        if self.reset_timeout < 0:
            raise ConfigurationError("reset_timeout must not be negative")
        if self.half_open_requests < 1:
            raise ConfigurationError("half_open_requests must be at least 1")
        if self.failure_window <= 0:
            raise ConfigurationError("failure_window must be positive")
        if self.success_threshold < 1:
            raise ConfigurationError("success_threshold must be at least 1")
        if self.success_threshold > self.half_open_requests:
            raise ConfigurationError(
                "success_threshold must not exceed half_open_requests"
            )
        if self.failure_percentage is not None and not (
            0 < self.failure_percentage <= 100
        ):
            raise ConfigurationError("failure_percentage must be in (0, 100]")
        if self.minimum_requests is not None and self.minimum_requests < 1:
            raise ConfigurationError("minimum_requests must be at least 1")

    @property
    def uses_percentage(self) -> bool:
        return self.failure_percentage is not None and self.minimum_requests is not None

    @classmethod
    def from_policy(
        cls, policy: CircuitBreakerPolicy, key: str | None = None
    ) -> CircuitBreakerSettings:
        """Build settings from a reusable circuit breaker policy object."""
        return cls(
            failure_threshold=policy.failure_threshold,
            reset_timeout=policy.reset_timeout,
            half_open_requests=policy.half_open_requests,
            failure_window=policy.failure_window,
            success_threshold=policy.success_threshold,
            failure_percentage=policy.failure_percentage,
            minimum_requests=policy.minimum_requests,
            key=key,
            failure_condition=policy.is_failure,
        )


@dataclass(frozen=True)
class ThrowOnError:
    """Which failed responses are raised as HttpFailure."""

    client_errors: bool = True
    server_errors: bool = True

    def should_throw(self, status: int) -> bool:
        if 400 <= status < 500:
            return self.client_errors
        if status >= 500:
            return self.server_errors
        return False


@dataclass(frozen=True)
class IdempotencySettings:
    """Idempotency key handling for mutation requests."""

    enabled: bool = True
    header: str = "Idempotency-Key"
    key_method: Callable[[Request], str] | None = None


@dataclass(frozen=True)
class RequestPolicy:
    """
    Everything the resilience layer needs to know about one request.

    A request with an empty policy is not cached (unless the connector
    enables default caching for its method), not rate limited, not retried
    and not guarded by a circuit breaker.
    """

    cache: CacheSettings | None = None
    no_cache: bool = False
    invalidates: InvalidatesCache | None = None
    rate_limit: RateLimitSettings | None = None
    retry: RetrySettings | None = None
    circuit_breaker: CircuitBreakerSettings | None = None
    throw_on_error: ThrowOnError | None = None
    idempotency: IdempotencySettings | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    def merge(self, other: RequestPolicy) -> RequestPolicy:
        """Return a policy where every setting present on ``other`` wins."""
        changes = {
            name: getattr(other, name)
            for name in (
                "cache",
                "invalidates",
                "rate_limit",
                "retry",
                "circuit_breaker",
                "throw_on_error",
                "idempotency",
            )
            if getattr(other, name) is not None
        }
        if other.no_cache:
            changes["no_cache"] = True
        if other.extra:
            changes["extra"] = {**self.extra, **other.extra}
        return replace(self, **changes)


__all__ = [
    "BackoffName",
    "CacheSettings",
    "CircuitBreakerSettings",
    "IdempotencySettings",
    "InvalidatesCache",
    "RateLimitSettings",
    "RequestPolicy",
    "RetrySettings",
    "ThrowOnError",
]
