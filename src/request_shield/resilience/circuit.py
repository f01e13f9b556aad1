# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Circuit breaker state machine.

Transitions:

- CLOSED -> OPEN: the failure count in the current window reaches
  ``failure_threshold``, or, when ``failure_percentage`` and
  ``minimum_requests`` are both set, the failure rate over at least
  ``minimum_requests`` observations reaches ``failure_percentage``
- OPEN -> HALF_OPEN: on the first call after ``reset_timeout`` seconds
- HALF_OPEN -> CLOSED: ``success_threshold`` trial successes
- HALF_OPEN -> OPEN: any trial failure, or every admitted trial resolved
  without reaching ``success_threshold``

The failure window is tumbling: counters reset entirely once
``failure_window`` seconds have passed since the window started. A success
never clears failures inside a live window.

All transitions are pure functions of (snapshot, settings, now) applied
through ``CircuitBreakerStore.update``, so each step is atomic per key.
Callbacks and metrics run after the store update, outside the lock.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Callable
from dataclasses import replace
from enum import Enum

from ..backends.base import CircuitBreakerStore
from ..backends.memory import MemoryCircuitStore
from ..exceptions import CircuitOpenError
from ..observability.collector import MetricsCollector
from ..observability.constants import (
    CIRCUIT_REJECTIONS_TOTAL,
    CIRCUIT_TRANSITIONS_TOTAL,
)
from ..templating import render_key_template
from ..types.circuit import CircuitSnapshot, CircuitState
from ..types.policy import CircuitBreakerSettings
from ..types.request import Request
from ..types.response import Response

logger = logging.getLogger(__name__)


class Admission(Enum):
    ALLOW = "allow"
    REJECT_OPEN = "reject_open"
    REJECT_CAPACITY = "reject_capacity"


def _fresh_window(now: float) -> CircuitSnapshot:
    return CircuitSnapshot(state=CircuitState.CLOSED, window_start=now)


def _opened(now: float) -> CircuitSnapshot:
    return CircuitSnapshot(state=CircuitState.OPEN, opened_at=now)


def _roll_window(
    snapshot: CircuitSnapshot, settings: CircuitBreakerSettings, now: float
) -> CircuitSnapshot:
    if snapshot.window_start is None or now >= snapshot.window_start + settings.failure_window:
        return _fresh_window(now)
    return snapshot


def _open_remaining(
    snapshot: CircuitSnapshot, settings: CircuitBreakerSettings, now: float
) -> float:
    opened_at = snapshot.opened_at if snapshot.opened_at is not None else now
    return max(0.0, opened_at + settings.reset_timeout - now)


def admit(
    snapshot: CircuitSnapshot, settings: CircuitBreakerSettings, now: float
) -> tuple[CircuitSnapshot, tuple[Admission, float]]:
    """Decide whether a call may proceed; returns (new snapshot, (decision, retry_after))."""
    if snapshot.state is CircuitState.OPEN:
        remaining = _open_remaining(snapshot, settings, now)
        if remaining > 0:
            return snapshot, (Admission.REJECT_OPEN, remaining)
        half_open = CircuitSnapshot(
            state=CircuitState.HALF_OPEN,
            opened_at=snapshot.opened_at,
            trial_admitted=1,
        )
        return half_open, (Admission.ALLOW, 0.0)

    if snapshot.state is CircuitState.HALF_OPEN:
        if snapshot.trial_admitted < settings.half_open_requests:
            return (
                replace(snapshot, trial_admitted=snapshot.trial_admitted + 1),
                (Admission.ALLOW, 0.0),
            )
        if snapshot.trial_successes >= snapshot.trial_admitted:
            # Every trial resolved without closing the circuit
            return _opened(now), (Admission.REJECT_OPEN, float(settings.reset_timeout))
        return snapshot, (Admission.REJECT_CAPACITY, 1.0)

    return snapshot, (Admission.ALLOW, 0.0)


def record_success(
    snapshot: CircuitSnapshot, settings: CircuitBreakerSettings, now: float
) -> tuple[CircuitSnapshot, None]:
    if snapshot.state is CircuitState.HALF_OPEN:
        successes = snapshot.trial_successes + 1
        if successes >= settings.success_threshold:
            return _fresh_window(now), None
        return replace(snapshot, trial_successes=successes), None

    if snapshot.state is CircuitState.OPEN:
        # Late result from a call admitted before the circuit opened
        return snapshot, None

    current = _roll_window(snapshot, settings, now)
    return replace(current, success_count=current.success_count + 1), None


def _tripped(snapshot: CircuitSnapshot, settings: CircuitBreakerSettings) -> bool:
    if settings.failure_percentage is not None and settings.minimum_requests is not None:
        return (
            snapshot.total_count >= settings.minimum_requests
            and snapshot.failure_rate >= settings.failure_percentage
        )
    return snapshot.failure_count >= settings.failure_threshold


def record_failure(
    snapshot: CircuitSnapshot, settings: CircuitBreakerSettings, now: float
) -> tuple[CircuitSnapshot, None]:
    if snapshot.state is CircuitState.HALF_OPEN:
        return _opened(now), None

    if snapshot.state is CircuitState.OPEN:
        return snapshot, None

    current = _roll_window(snapshot, settings, now)
    current = replace(current, failure_count=current.failure_count + 1)
    if _tripped(current, settings):
        return _opened(now), None
    return current, None


def release_trial(
    snapshot: CircuitSnapshot, settings: CircuitBreakerSettings, now: float
) -> tuple[CircuitSnapshot, None]:
    """Give back a half-open trial slot whose call neither succeeded nor failed."""
    if snapshot.state is CircuitState.HALF_OPEN and snapshot.trial_admitted > 0:
        return replace(snapshot, trial_admitted=snapshot.trial_admitted - 1), None
    return snapshot, None


def resolve_circuit_key(
    caller: str, request: Request, settings: CircuitBreakerSettings
) -> str:
    """Render the settings' key template, or fall back to the caller name."""
    if settings.key:
        return render_key_template(settings.key, request.key_values, strict=False)
    return caller


class CircuitBreaker:
    """
    One circuit, identified by ``key``, backed by a CircuitBreakerStore.

    Example:
        >>> breaker = CircuitBreaker("payments", CircuitBreakerSettings(failure_threshold=3))
        >>> await breaker.allow_request()       # raises CircuitOpenError when open
        >>> await breaker.record_failure()
    """

    def __init__(
        self,
        key: str,
        settings: CircuitBreakerSettings | None = None,
        store: CircuitBreakerStore | None = None,
        clock: Callable[[], float] = time.time,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.key = key
        self.settings = settings or CircuitBreakerSettings()
        self.store = store if store is not None else MemoryCircuitStore()
        self._clock = clock
        self._metrics = metrics

    # === State inspection ===

    async def snapshot(self) -> CircuitSnapshot:
        return await self.store.load(self.key)

    async def state(self) -> CircuitState:
        """Effective state; an expired OPEN circuit reports HALF_OPEN."""
        snapshot = await self.store.load(self.key)
        if (
            snapshot.state is CircuitState.OPEN
            and _open_remaining(snapshot, self.settings, self._clock()) <= 0
        ):
            return CircuitState.HALF_OPEN
        return snapshot.state

    async def is_open(self) -> bool:
        return await self.state() is CircuitState.OPEN

    async def is_closed(self) -> bool:
        return await self.state() is CircuitState.CLOSED

    async def is_half_open(self) -> bool:
        return await self.state() is CircuitState.HALF_OPEN

    async def retry_after(self) -> float:
        """Seconds until an open circuit admits a trial call (0 otherwise)."""
        snapshot = await self.store.load(self.key)
        if snapshot.state is not CircuitState.OPEN:
            return 0.0
        return _open_remaining(snapshot, self.settings, self._clock())

    def is_failure(self, response: Response) -> bool:
        """Whether ``response`` counts as a failure for this circuit."""
        if self.settings.failure_condition is not None:
            return bool(self.settings.failure_condition(response))
        return response.server_error

    # === Transitions ===

    async def allow_request(self) -> None:
        """
        Admit one call or raise.

        Raises:
            CircuitOpenError: When the circuit is open, or half-open with
                every trial slot taken
        """
        now = self._clock()
        before, after, (decision, retry_after) = await self.store.update(
            self.key, lambda s: admit(s, self.settings, now)
        )
        await self._after_transition(before, after)

        if decision is Admission.ALLOW:
            return
        self._inc(CIRCUIT_REJECTIONS_TOTAL, {"key": self.key})
        if decision is Admission.REJECT_CAPACITY:
            logger.debug(f"Circuit '{self.key}' half-open at trial capacity")
            raise CircuitOpenError.half_open_at_capacity(self.key)
        logger.debug(f"Circuit '{self.key}' open, rejecting for {retry_after:.2f}s")
        raise CircuitOpenError.open(self.key, retry_after)

    async def record_success(self) -> None:
        now = self._clock()
        before, after, _ = await self.store.update(
            self.key, lambda s: record_success(s, self.settings, now)
        )
        await self._after_transition(before, after)

    async def record_failure(self) -> None:
        now = self._clock()
        before, after, _ = await self.store.update(
            self.key, lambda s: record_failure(s, self.settings, now)
        )
        await self._after_transition(before, after)

    async def release(self) -> None:
        now = self._clock()
        await self.store.update(
            self.key, lambda s: release_trial(s, self.settings, now)
        )

    async def open(self) -> None:
        """Force the circuit open."""
        now = self._clock()
        before, after, _ = await self.store.update(
            self.key, lambda s: (_opened(now), None)
        )
        await self._after_transition(before, after)

    async def close(self) -> None:
        """Force the circuit closed with a fresh window."""
        now = self._clock()
        before, after, _ = await self.store.update(
            self.key, lambda s: (_fresh_window(now), None)
        )
        await self._after_transition(before, after)

    async def reset(self) -> None:
        """Forget all state for this circuit."""
        await self.store.reset(self.key)

    # === Internals ===

    async def _after_transition(
        self, before: CircuitSnapshot, after: CircuitSnapshot
    ) -> None:
        if before.state is after.state:
            return

        logger.info(
            f"Circuit '{self.key}' transitioned "
            f"{before.state.value} -> {after.state.value}"
        )
        self._inc(
            CIRCUIT_TRANSITIONS_TOTAL, {"key": self.key, "state": after.state.value}
        )

        callback = {
            CircuitState.OPEN: self.settings.on_open,
            CircuitState.CLOSED: self.settings.on_close,
            CircuitState.HALF_OPEN: self.settings.on_half_open,
        }[after.state]
        if callback is None:
            return
        result = callback(self.key)
        if inspect.isawaitable(result):
            await result

    def _inc(self, name: str, labels: dict[str, str]) -> None:
        if self._metrics is not None:
            self._metrics.inc_counter(name, labels=labels)


__all__ = [
    "Admission",
    "CircuitBreaker",
    "admit",
    "record_failure",
    "record_success",
    "release_trial",
    "resolve_circuit_key",
]
