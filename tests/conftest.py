"""Shared fixtures for the request-shield test suite."""

from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from request_shield.observability.collector import MetricsCollector


class FakeClock:
    """Manually advanced unix clock."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.delays: list[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def metrics() -> MetricsCollector:
    """Collector with its own registry so tests never share Prometheus state."""
    return MetricsCollector(registry=CollectorRegistry())
