# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Protocols for pluggable strategies used by the resilience layer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..types.request import Request
    from ..types.response import Response


@runtime_checkable
class CacheKeyResolver(Protocol):
    """Derives a custom cache key for a request."""

    def resolve(self, request: Request) -> str:
        """Return the cache key to use verbatim."""
        ...


@runtime_checkable
class BackoffStrategy(Protocol):
    """
    Computes how long to wait before retrying a rate limited request.

    ``retry_after`` is the server or limiter hint in seconds (0 when none);
    the return value is a delay in milliseconds.
    """

    def calculate_delay(
        self, request: Request, attempt: int, retry_after: float
    ) -> int: ...


@runtime_checkable
class RetryDecider(Protocol):
    """Custom decision on whether a failed attempt should be retried."""

    def __call__(
        self,
        request: Request,
        response: Response | None,
        error: BaseException | None,
        attempt: int,
    ) -> bool: ...


@runtime_checkable
class RetryPolicy(Protocol):
    """Reusable retry configuration shared by several requests."""

    times: int
    delay: int
    multiplier: float
    max_delay: int
    status_codes: frozenset[int] | None
    exceptions: tuple[type[BaseException], ...] | None

    def should_retry(
        self,
        request: Request,
        response: Response | None,
        error: BaseException | None,
        attempt: int,
    ) -> bool: ...


@runtime_checkable
class CircuitBreakerPolicy(Protocol):
    """Reusable circuit breaker configuration shared by several requests."""

    failure_threshold: int
    reset_timeout: float
    half_open_requests: int
    failure_window: float
    success_threshold: int
    failure_percentage: float | None
    minimum_requests: int | None

    def is_failure(self, response: Response) -> bool: ...


@runtime_checkable
class Authenticator(Protocol):
    """Applies credentials to a request before it is sent."""

    def authenticate(self, request: Request) -> Request: ...


@runtime_checkable
class IdGenerator(Protocol):
    """Produces unique identifiers (idempotency keys, trace and span ids)."""

    def generate(self, request: Request | None = None) -> str: ...


__all__ = [
    "Authenticator",
    "BackoffStrategy",
    "CacheKeyResolver",
    "CircuitBreakerPolicy",
    "IdGenerator",
    "RetryDecider",
    "RetryPolicy",
]
