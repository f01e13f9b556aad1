# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Circuit breaker state records."""

from dataclasses import dataclass
from enum import Enum


class CircuitState(Enum):
    """
    State of one circuit.

    - CLOSED: calls pass through and failures are counted
    - OPEN: calls are rejected until the reset timeout elapses
    - HALF_OPEN: a bounded number of trial calls are admitted
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass(frozen=True)
class CircuitSnapshot:
    """
    Stored state for one circuit key.

    Attributes:
        state: Current circuit state
        failure_count: Failures observed in the current window (closed)
        success_count: Successes observed in the current window (closed)
        window_start: Start of the current failure window, or None before
            the first observation
        opened_at: When the circuit last opened
        trial_admitted: Trial calls admitted while half-open
        trial_successes: Trial calls that succeeded while half-open
    """

    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    window_start: float | None = None
    opened_at: float | None = None
    trial_admitted: int = 0
    trial_successes: int = 0

    @property
    def total_count(self) -> int:
        return self.failure_count + self.success_count

    @property
    def failure_rate(self) -> float:
        """Failure percentage in the current window (0-100)."""
        if self.total_count == 0:
            return 0.0
        return self.failure_count * 100.0 / self.total_count


__all__ = ["CircuitSnapshot", "CircuitState"]
