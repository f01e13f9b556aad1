# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Exception classes for the request-shield library.

This module defines the exception hierarchy used throughout the library.
All exceptions inherit from ShieldError, making it easy to catch every
error raised by the resilience layer with a single except clause.

Hierarchy::

    ShieldError
    ├── ConfigurationError
    ├── CacheKeyError
    ├── StrayRequestError
    ├── BackendConnectionError
    ├── BackendOperationError
    ├── CircuitOpenError
    ├── RetryExhausted
    └── RequestFailure
        ├── TransportFailure
        └── HttpFailure
            ├── ClientHttpFailure
            │   └── RateLimitExceeded
            └── ServerHttpFailure
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .types.request import Request
    from .types.response import Response


class ShieldError(Exception):
    """Base exception for all request-shield errors.

    Example:
        try:
            response = await connector.send(request)
        except ShieldError as e:
            logger.error(f"Request failed: {e}")
    """

    pass


class ConfigurationError(ShieldError, ValueError):
    """Raised when a configuration object holds invalid values.

    Configuration dataclasses validate themselves in ``__post_init__`` and
    raise this error immediately, so a bad setting is reported where it is
    constructed rather than on the first request that uses it.

    Example:
        try:
            settings = RetrySettings(times=0)
        except ConfigurationError as e:
            logger.error(f"Invalid retry settings: {e}")
    """

    pass


class CacheKeyError(ShieldError):
    """Raised when a custom cache key cannot be resolved.

    This is a programming error: the request declared a resolver that did
    not return a string, or a key template referenced a value that is not
    a scalar. It is never retried.
    """

    @classmethod
    def method_must_return_string(cls, name: str = "key resolver") -> CacheKeyError:
        return cls(f"Cache {name} must return a string")

    @classmethod
    def value_must_be_scalar(cls, name: str) -> CacheKeyError:
        return cls(
            f"Cache key value '{name}' must be a string, number, or boolean "
            "to be used in a key template"
        )


class StrayRequestError(ShieldError):
    """Raised when a real network call is attempted while strays are forbidden.

    Connectors created with ``prevent_stray_requests=True`` refuse to touch
    the transport. The check runs before any cache, rate limit, or circuit
    state is consulted.

    Attributes:
        request: The request that would have been sent.
    """

    def __init__(self, request: Request):
        super().__init__(
            f"Attempted to make a real request to {request.method} "
            f"{request.endpoint} while stray requests are prevented"
        )
        self.request = request


class BackendConnectionError(ShieldError):
    """Raised when a shared store backend cannot be reached.

    Example:
        try:
            await store.health_check()
        except BackendConnectionError:
            logger.warning("Redis unavailable, falling back to memory store")
            store = MemoryRateLimitStore()
    """

    pass


class BackendOperationError(ShieldError):
    """Raised when a command against a shared store backend fails."""

    pass


class CircuitOpenError(ShieldError):
    """Raised when a circuit breaker rejects a call without sending it.

    Attributes:
        key: The circuit key that rejected the call.
        retry_after: Seconds until the circuit may admit a trial call.

    Example:
        try:
            response = await connector.send(request)
        except CircuitOpenError as e:
            await asyncio.sleep(e.retry_after)
    """

    def __init__(self, message: str, key: str, retry_after: float = 0.0):
        super().__init__(message)
        self.key = key
        self.retry_after = max(0.0, retry_after)

    @classmethod
    def open(cls, key: str, retry_after: float) -> CircuitOpenError:
        return cls(
            f"Circuit '{key}' is open. Retry after {retry_after:.2f} seconds.",
            key=key,
            retry_after=retry_after,
        )

    @classmethod
    def half_open_at_capacity(cls, key: str) -> CircuitOpenError:
        return cls(
            f"Circuit '{key}' is half-open and at trial capacity.",
            key=key,
            retry_after=1.0,
        )


class RetryExhausted(ShieldError):
    """Raised when every retry attempt failed with an exception.

    The underlying error is chained as ``__cause__`` and kept on
    ``last_error``.

    Attributes:
        last_error: The exception raised by the final attempt.
        attempts: How many attempts were made in total.
    """

    def __init__(self, last_error: BaseException, attempts: int):
        super().__init__(
            f"Request failed after {attempts} attempt(s): {last_error}"
        )
        self.last_error = last_error
        self.attempts = attempts


class RequestFailure(ShieldError):
    """Base class for failures tied to a specific request.

    Attributes:
        request: The request that failed, when known.
        response: The response received, if the failure has one.
    """

    def __init__(
        self,
        message: str,
        request: Request | None = None,
        response: Response | None = None,
    ):
        super().__init__(message)
        self.request = request
        self.response = response

    @property
    def has_response(self) -> bool:
        return self.response is not None


class TransportFailure(RequestFailure):
    """Raised when the transport could not produce a response at all.

    Connection refusals, DNS errors and timeouts end up here. These are
    retryable by default.
    """

    pass


class HttpFailure(RequestFailure):
    """Raised for a 4xx or 5xx response under the throw-on-error policy.

    Attributes:
        status: The HTTP status code of the response.
    """

    def __init__(
        self,
        message: str,
        request: Request | None = None,
        response: Response | None = None,
        status: int | None = None,
    ):
        super().__init__(message, request=request, response=response)
        if status is None and response is not None:
            status = response.status
        self.status = status

    @classmethod
    def from_response(
        cls, response: Response, request: Request | None = None
    ) -> HttpFailure:
        """Build the most specific failure class for a failed response."""
        request = request if request is not None else response.request
        status = response.status
        target = f"{request.method} {request.endpoint}" if request else "request"
        if status == 429:
            return RateLimitExceeded.from_response(response, request)
        if 400 <= status < 500:
            return ClientHttpFailure(
                f"Client error {status} for {target}",
                request=request,
                response=response,
                status=status,
            )
        if status >= 500:
            return ServerHttpFailure(
                f"Server error {status} for {target}",
                request=request,
                response=response,
                status=status,
            )
        return cls(
            f"Unexpected status {status} for {target}",
            request=request,
            response=response,
            status=status,
        )


class ClientHttpFailure(HttpFailure):
    """Raised for 4xx responses."""

    pass


class ServerHttpFailure(HttpFailure):
    """Raised for 5xx responses."""

    pass


class RateLimitExceeded(ClientHttpFailure):
    """Raised when a request is rate limited.

    Two sources produce this error. The local rate limiter raises it before
    any network I/O when a fixed window is exhausted (no response attached).
    A remote 429 response is converted into it by the throw-on-error policy
    (response attached).

    Attributes:
        retry_after: Seconds until the window resets, never negative.
        limit: The configured or advertised request limit, when known.
        remaining: Requests remaining in the window, when known.
        key: The limiter key that rejected the request, for local rejections.

    Example:
        try:
            await connector.send(request)
        except RateLimitExceeded as e:
            await asyncio.sleep(e.retry_after)
    """

    def __init__(
        self,
        message: str,
        retry_after: float = 0.0,
        limit: int | None = None,
        remaining: int | None = None,
        key: str | None = None,
        request: Request | None = None,
        response: Response | None = None,
    ):
        super().__init__(message, request=request, response=response, status=429)
        self.retry_after = max(0.0, retry_after)
        self.limit = limit
        self.remaining = remaining
        self.key = key

    @classmethod
    def exceeded(
        cls,
        retry_after: float,
        limit: int | None = None,
        remaining: int | None = 0,
        key: str | None = None,
        request: Request | None = None,
    ) -> RateLimitExceeded:
        return cls(
            f"Rate limit exceeded. Retry after {max(0.0, retry_after):.0f} seconds.",
            retry_after=retry_after,
            limit=limit,
            remaining=remaining,
            key=key,
            request=request,
        )

    @classmethod
    def from_response(
        cls, response: Response, request: Request | None = None
    ) -> RateLimitExceeded:
        info = response.rate_limit()
        retry_after = response.retry_after()
        if retry_after is None and info is not None and info.reset is not None:
            retry_after = info.seconds_until_reset()
        kwargs: dict[str, Any] = {
            "retry_after": retry_after or 0.0,
            "request": request if request is not None else response.request,
            "response": response,
        }
        if info is not None:
            kwargs["limit"] = info.limit
            kwargs["remaining"] = info.remaining
        return cls(
            f"Rate limit exceeded (HTTP {response.status}).",
            **kwargs,
        )

    @property
    def is_server_side(self) -> bool:
        return self.response is not None

    @property
    def is_client_side(self) -> bool:
        return self.response is None


__all__ = [
    "BackendConnectionError",
    "BackendOperationError",
    "CacheKeyError",
    "CircuitOpenError",
    "ClientHttpFailure",
    "ConfigurationError",
    "HttpFailure",
    "RateLimitExceeded",
    "RequestFailure",
    "RetryExhausted",
    "ServerHttpFailure",
    "ShieldError",
    "StrayRequestError",
    "TransportFailure",
]
