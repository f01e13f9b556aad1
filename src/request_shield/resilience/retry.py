# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Retry classification and backoff.

A call is retried when its failure is retryable and attempts remain.
Retryability is decided, in order, by a custom decider, an explicit status
code or exception allow-list, or the default classification:

- transport failures (no response at all) are retryable
- 5xx responses are retryable
- 4xx responses are not, except 429 when the request's rate limit settings
  enable retrying
- configuration and cache key errors are programming errors and are never
  retried

Delays are in milliseconds: ``min(max_delay, delay * multiplier^(attempt-1))``
unless the failure carries a Retry-After value, which takes precedence.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ..exceptions import (
    CacheKeyError,
    CircuitOpenError,
    ConfigurationError,
    HttpFailure,
    RateLimitExceeded,
    RetryExhausted,
    StrayRequestError,
    TransportFailure,
)
from ..observability.collector import MetricsCollector
from ..observability.constants import RETRIES_TOTAL
from ..types.policy import RetrySettings
from ..types.request import Request
from ..types.response import Response

logger = logging.getLogger(__name__)

# Errors that signal a bug or a deliberate rejection, never a transient fault
NEVER_RETRIED: tuple[type[BaseException], ...] = (
    CacheKeyError,
    ConfigurationError,
    StrayRequestError,
    CircuitOpenError,
)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryContext:
    """Bookkeeping for one logical call across its attempts."""

    attempt: int = 0
    cumulative_delay_ms: int = 0
    last_error_kind: str | None = None

    def next_attempt(self) -> int:
        self.attempt += 1
        return self.attempt

    def record_failure(self, kind: str, delay_ms: int) -> None:
        self.last_error_kind = kind
        self.cumulative_delay_ms += delay_ms


def _error_kind(error: BaseException) -> str:
    if isinstance(error, TransportFailure):
        return "transport"
    if isinstance(error, HttpFailure):
        return f"http_{error.status}"
    return type(error).__name__


class RetryHandler:
    """
    Decides whether failed attempts are retried and how long to wait.

    Args:
        default: Settings for requests whose policy declares none. When both
            are absent the request is never retried.
        sleep: Coroutine used to wait between attempts
        metrics: Optional metrics collector

    Example:
        >>> handler = RetryHandler(RetrySettings(times=3, delay=100))
        >>> handler.calculate_delay(request, 2)
        200
    """

    def __init__(
        self,
        default: RetrySettings | None = None,
        sleep: Sleep = asyncio.sleep,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.default = default
        self._sleep = sleep
        self._metrics = metrics

    def settings_for(self, request: Request) -> RetrySettings | None:
        return request.policy.retry or self.default

    # === Classification ===

    def is_retryable_response(self, request: Request, response: Response) -> bool:
        """Classify a response by status alone, ignoring attempt counts."""
        if response.successful or response.redirect:
            return False
        settings = self.settings_for(request)
        if settings is not None and settings.status_codes is not None:
            return response.status in settings.status_codes
        if response.status == 429:
            rate_limit = request.policy.rate_limit
            return rate_limit is not None and rate_limit.retry
        return response.server_error

    def is_retryable_exception(self, request: Request, error: BaseException) -> bool:
        """Classify an exception, ignoring attempt counts."""
        if isinstance(error, NEVER_RETRIED):
            return False
        settings = self.settings_for(request)
        if settings is not None and settings.exceptions is not None:
            return isinstance(error, settings.exceptions)
        if isinstance(error, TransportFailure):
            return True
        if isinstance(error, HttpFailure) and error.response is not None:
            return self.is_retryable_response(request, error.response)
        return False

    def should_retry_response(
        self, request: Request, response: Response, attempt: int
    ) -> bool:
        """Whether attempt number ``attempt`` (1-based) should be followed by another."""
        settings = self.settings_for(request)
        if settings is None or attempt >= settings.times:
            return False
        if settings.decider is not None:
            return bool(settings.decider(request, response, None, attempt))
        return self.is_retryable_response(request, response)

    def should_retry_exception(
        self, request: Request, error: BaseException, attempt: int
    ) -> bool:
        settings = self.settings_for(request)
        if settings is None or attempt >= settings.times:
            return False
        return self._retryable_error(request, settings, error, attempt)

    def _retryable_error(
        self,
        request: Request,
        settings: RetrySettings,
        error: BaseException,
        attempt: int,
    ) -> bool:
        if isinstance(error, NEVER_RETRIED):
            return False
        if settings.decider is not None:
            response = getattr(error, "response", None)
            return bool(settings.decider(request, response, error, attempt))
        return self.is_retryable_exception(request, error)

    # === Backoff ===

    def calculate_delay(
        self, request: Request, attempt: int, retry_after: float | None = None
    ) -> int:
        """
        Delay in milliseconds after failed attempt ``attempt`` (1-based).

        Args:
            request: The request being retried
            attempt: Number of the attempt that just failed
            retry_after: Server-provided wait in seconds, if any

        Returns:
            Milliseconds to wait, never more than ``max_delay``
        """
        settings = self.settings_for(request) or RetrySettings()
        if retry_after is not None and settings.respect_retry_after:
            return min(settings.max_delay, max(0, int(retry_after * 1000)))
        delay = settings.delay * settings.multiplier ** (attempt - 1)
        return min(settings.max_delay, int(delay))

    # === Execution ===

    async def run(
        self,
        request: Request,
        call: Callable[[Request], Awaitable[Response]],
        context: RetryContext | None = None,
    ) -> Response:
        """
        Invoke ``call`` until it succeeds or retries are exhausted.

        A retryable response on the final attempt is returned as is. A
        retryable exception on the final attempt raises RetryExhausted
        chained to it. Non-retryable exceptions propagate unchanged.

        Raises:
            RetryExhausted: When every attempt raised a retryable error
        """
        context = context or RetryContext()
        settings = self.settings_for(request)

        while True:
            attempt = context.next_attempt()
            try:
                response = await call(request)
            except asyncio.CancelledError:
                raise
            except Exception as error:
                if not self.should_retry_exception(request, error, attempt):
                    if (
                        settings is not None
                        and settings.times > 1
                        and self._retryable_error(request, settings, error, attempt)
                    ):
                        logger.warning(
                            f"Giving up on {request.method} {request.endpoint} "
                            f"after {attempt} attempts: {error}"
                        )
                        raise RetryExhausted(error, attempt) from error
                    raise
                await self._back_off(
                    request, context, _error_kind(error), _retry_after_of(error)
                )
                continue

            if not self.should_retry_response(request, response, attempt):
                return response
            await self._back_off(
                request, context, f"http_{response.status}", response.retry_after()
            )

    async def _back_off(
        self,
        request: Request,
        context: RetryContext,
        kind: str,
        retry_after: float | None,
    ) -> None:
        delay_ms = self.calculate_delay(request, context.attempt, retry_after)
        context.record_failure(kind, delay_ms)
        logger.warning(
            f"Retrying {request.method} {request.endpoint} after {kind} "
            f"(attempt {context.attempt}, waiting {delay_ms}ms)"
        )
        if self._metrics is not None:
            self._metrics.inc_counter(RETRIES_TOTAL, labels={"reason": kind})
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000)


def _retry_after_of(error: BaseException) -> float | None:
    if isinstance(error, RateLimitExceeded):
        return error.retry_after
    response = getattr(error, "response", None)
    if isinstance(response, Response):
        return response.retry_after()
    return None


__all__ = ["NEVER_RETRIED", "RetryContext", "RetryHandler"]
