# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Local fixed-window rate limiter.

The limiter resolves a request's RateLimitSettings (or the connector-level
default), derives the limiter key, and counts the request against a
RateLimitStore. A full window raises RateLimitExceeded before any network
I/O takes place.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..backends.base import RateLimitStore
from ..backends.memory import MemoryRateLimitStore
from ..exceptions import RateLimitExceeded
from ..observability.collector import MetricsCollector
from ..observability.constants import RATE_LIMIT_REJECTIONS_TOTAL
from ..protocols.strategies import BackoffStrategy
from ..templating import render_key_template
from ..types.policy import RateLimitSettings
from ..types.request import Request
from ..types.response import RateLimitInfo

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_MS = 1000


class RateLimiter:
    """
    Fixed-window limiter in front of a RateLimitStore.

    Args:
        store: Counter store (in-memory by default)
        default: Settings applied to requests that declare none
        clock: Source of the current unix time
        metrics: Optional metrics collector

    Example:
        >>> limiter = RateLimiter(default=RateLimitSettings(requests=3, per_seconds=60))
        >>> await limiter.check("GitHub", request)  # raises on the 4th call
    """

    def __init__(
        self,
        store: RateLimitStore | None = None,
        default: RateLimitSettings | None = None,
        clock: Callable[[], float] = time.time,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.store = store if store is not None else MemoryRateLimitStore(clock=clock)
        self.default = default
        self._clock = clock
        self._metrics = metrics

    def settings_for(self, request: Request) -> RateLimitSettings | None:
        return request.policy.rate_limit or self.default

    def resolve_key(
        self, caller: str, request: Request, settings: RateLimitSettings
    ) -> str:
        """Render the settings' key template, or fall back to the caller name."""
        if settings.key:
            return render_key_template(settings.key, request.key_values, strict=False)
        return caller

    async def check(self, caller: str, request: Request) -> RateLimitInfo | None:
        """
        Count ``request`` against its window.

        Returns:
            The window state after counting, or None when no limit applies

        Raises:
            RateLimitExceeded: When the window is already full
        """
        settings = self.settings_for(request)
        if settings is None:
            return None

        key = self.resolve_key(caller, request, settings)
        allowed, bucket = await self.store.attempt_with_state(
            key, settings.requests, settings.per_seconds
        )
        reset_at = bucket.reset_at
        remaining = max(0, settings.requests - bucket.count)

        if not allowed:
            retry_after = max(0.0, reset_at - self._clock())
            logger.warning(
                f"Rate limit exceeded for '{key}' "
                f"({settings.requests}/{settings.per_seconds}s), "
                f"retry after {retry_after:.2f}s"
            )
            if self._metrics is not None:
                self._metrics.inc_counter(
                    RATE_LIMIT_REJECTIONS_TOTAL, labels={"key": key}
                )
            raise RateLimitExceeded.exceeded(
                retry_after=retry_after,
                limit=settings.requests,
                remaining=remaining,
                key=key,
                request=request,
            )

        return RateLimitInfo(
            limit=settings.requests, remaining=remaining, reset=reset_at
        )

    async def get_state(self, caller: str, request: Request) -> RateLimitInfo | None:
        """Inspect the window for ``request`` without counting it."""
        settings = self.settings_for(request)
        if settings is None:
            return None
        key = self.resolve_key(caller, request, settings)
        return RateLimitInfo(
            limit=settings.requests,
            remaining=await self.store.get_remaining(key, settings.requests),
            reset=await self.store.get_reset_time(key),
        )

    async def reset(self, caller: str, request: Request) -> None:
        settings = self.settings_for(request)
        if settings is not None:
            await self.store.reset(self.resolve_key(caller, request, settings))

    def retry_settings(self, request: Request) -> RateLimitSettings | None:
        """Settings when the request waits and retries on rejection, else None."""
        settings = self.settings_for(request)
        if settings is None or not settings.retry:
            return None
        return settings

    def calculate_backoff(
        self,
        request: Request,
        settings: RateLimitSettings,
        attempt: int,
        retry_after: float = 0.0,
    ) -> int:
        """
        Delay in milliseconds before retry ``attempt`` (1-based).

        A configured BackoffStrategy decides on its own. Otherwise "linear"
        waits ``attempt`` seconds, "exponential" waits ``2^(attempt-1)``
        seconds and anything else waits one second.
        """
        backoff = settings.backoff
        if isinstance(backoff, BackoffStrategy):
            return int(backoff.calculate_delay(request, attempt, retry_after))
        if backoff == "linear":
            return attempt * DEFAULT_BACKOFF_MS
        if backoff == "exponential":
            return DEFAULT_BACKOFF_MS * 2 ** (attempt - 1)
        return DEFAULT_BACKOFF_MS


__all__ = ["DEFAULT_BACKOFF_MS", "RateLimiter"]
