# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Metrics collector backed by dict snapshots and Prometheus.

Every cache, limiter, circuit, retry and pool component accepts an optional
MetricsCollector. Values are kept in thread-safe dicts (for JSON export and
tests) and mirrored into prometheus_client metrics registered on the
collector's registry.

Usage:
    >>> from request_shield.observability import get_metrics_collector
    >>> collector = get_metrics_collector()
    >>> collector.inc_counter(CACHE_HITS_TOTAL)
    >>> collector.get_metrics()["counters"][CACHE_HITS_TOTAL]
    {'': 1.0}

Thread Safety:
    All operations use an RLock.

Cardinality Protection:
    At most MAX_LABEL_COMBINATIONS label combinations are tracked per metric;
    further combinations are dropped with a warning.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, ClassVar

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from .constants import (
    CACHE_HITS_TOTAL,
    CACHE_INVALIDATIONS_TOTAL,
    CACHE_MISSES_TOTAL,
    CACHE_WRITES_TOTAL,
    CIRCUIT_REJECTIONS_TOTAL,
    CIRCUIT_TRANSITIONS_TOTAL,
    LATENCY_BUCKETS,
    POOL_IN_FLIGHT,
    POOL_ITEMS_TOTAL,
    RATE_LIMIT_REJECTIONS_TOTAL,
    REQUEST_DURATION_SECONDS,
    RETRIES_TOTAL,
)

logger = logging.getLogger(__name__)


@dataclass
class MetricDefinition:
    """Schema for a metric: type, description, labels and histogram buckets."""

    name: str
    metric_type: str  # 'counter', 'gauge', 'histogram'
    description: str
    label_names: tuple[str, ...] = ()
    buckets: list[float] | None = None


METRIC_DEFINITIONS: dict[str, MetricDefinition] = {
    CACHE_HITS_TOTAL: MetricDefinition(
        CACHE_HITS_TOTAL, "counter", "Total cache hits"
    ),
    CACHE_MISSES_TOTAL: MetricDefinition(
        CACHE_MISSES_TOTAL, "counter", "Total cache misses"
    ),
    CACHE_WRITES_TOTAL: MetricDefinition(
        CACHE_WRITES_TOTAL, "counter", "Total cache writes"
    ),
    CACHE_INVALIDATIONS_TOTAL: MetricDefinition(
        CACHE_INVALIDATIONS_TOTAL, "counter", "Total cache entries invalidated"
    ),
    RATE_LIMIT_REJECTIONS_TOTAL: MetricDefinition(
        RATE_LIMIT_REJECTIONS_TOTAL,
        "counter",
        "Total local rate limit rejections",
        ("key",),
    ),
    CIRCUIT_TRANSITIONS_TOTAL: MetricDefinition(
        CIRCUIT_TRANSITIONS_TOTAL,
        "counter",
        "Total circuit state transitions",
        ("key", "state"),
    ),
    CIRCUIT_REJECTIONS_TOTAL: MetricDefinition(
        CIRCUIT_REJECTIONS_TOTAL,
        "counter",
        "Total circuit breaker rejections",
        ("key",),
    ),
    RETRIES_TOTAL: MetricDefinition(
        RETRIES_TOTAL, "counter", "Total retry attempts", ("reason",)
    ),
    POOL_ITEMS_TOTAL: MetricDefinition(
        POOL_ITEMS_TOTAL, "counter", "Total pool items resolved", ("outcome",)
    ),
    POOL_IN_FLIGHT: MetricDefinition(
        POOL_IN_FLIGHT, "gauge", "Pool items currently in flight"
    ),
    REQUEST_DURATION_SECONDS: MetricDefinition(
        REQUEST_DURATION_SECONDS,
        "histogram",
        "Duration of calls that reached the transport",
        buckets=LATENCY_BUCKETS,
    ),
}


class MetricsCollector:
    """
    Metrics collector supporting both dict-based and Prometheus metrics.

    Example:
        >>> registry = CollectorRegistry()
        >>> collector = MetricsCollector(registry=registry)
        >>> collector.inc_counter(RETRIES_TOTAL, labels={"reason": "status"})
        >>> collector.get_metrics()["counters"][RETRIES_TOTAL]
        {'reason=status': 1.0}
    """

    # Maximum unique label combinations per metric to prevent cardinality explosion
    MAX_LABEL_COMBINATIONS: ClassVar[int] = 1000

    def __init__(
        self,
        enable_prometheus: bool = True,
        registry: CollectorRegistry | None = None,
    ) -> None:
        """
        Initialize the metrics collector.

        Args:
            enable_prometheus: Whether to mirror values into Prometheus metrics
            registry: Prometheus registry; defaults to the global REGISTRY
        """
        self._enable_prometheus = enable_prometheus
        self._registry = registry if registry is not None else REGISTRY

        self._counters: dict[str, dict[str, float]] = defaultdict(
            lambda: defaultdict(float)
        )
        self._gauges: dict[str, dict[str, float]] = defaultdict(
            lambda: defaultdict(float)
        )
        self._histograms: dict[str, dict[str, list[float]]] = defaultdict(
            lambda: defaultdict(list)
        )

        self._lock = threading.RLock()

        # Prometheus metric instances (lazy initialized)
        self._prom_metrics: dict[str, Any] = {}

        self._label_combinations: dict[str, set[str]] = defaultdict(set)

        logger.debug(
            f"MetricsCollector initialized "
            f"(prometheus={'enabled' if self._enable_prometheus else 'disabled'})"
        )

    def _labels_to_key(self, labels: dict[str, str] | None) -> str:
        if not labels:
            return ""
        return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))

    def _check_cardinality(self, name: str, label_key: str) -> bool:
        if label_key in self._label_combinations[name]:
            return True
        if len(self._label_combinations[name]) >= self.MAX_LABEL_COMBINATIONS:
            logger.warning(
                f"Cardinality limit ({self.MAX_LABEL_COMBINATIONS}) reached "
                f"for metric {name}. Dropping label combination: {label_key}"
            )
            return False
        self._label_combinations[name].add(label_key)
        return True

    def _get_or_create_prom_metric(self, name: str, labels: dict[str, str] | None) -> Any | None:
        """Create the Prometheus metric for ``name`` on first use."""
        if not self._enable_prometheus:
            return None

        with self._lock:
            if name not in self._prom_metrics:
                defn = METRIC_DEFINITIONS.get(name)
                if defn is None:
                    logger.debug(f"No Prometheus definition for metric {name}")
                    return None
                try:
                    if defn.metric_type == "counter":
                        metric: Any = Counter(
                            name,
                            defn.description,
                            list(defn.label_names),
                            registry=self._registry,
                        )
                    elif defn.metric_type == "gauge":
                        metric = Gauge(
                            name,
                            defn.description,
                            list(defn.label_names),
                            registry=self._registry,
                        )
                    else:
                        metric = Histogram(
                            name,
                            defn.description,
                            list(defn.label_names),
                            buckets=defn.buckets or LATENCY_BUCKETS,
                            registry=self._registry,
                        )
                except ValueError as e:
                    # Duplicate registration on a shared registry
                    logger.warning(f"Failed to create Prometheus metric {name}: {e}")
                    return None
                self._prom_metrics[name] = metric

        metric = self._prom_metrics[name]
        return metric.labels(**labels) if labels else metric

    # === Counter Operations ===

    def inc_counter(
        self,
        name: str,
        value: float = 1,
        labels: dict[str, str] | None = None,
    ) -> None:
        """
        Increment a counter metric.

        Raises:
            ValueError: If value is negative
        """
        if value < 0:
            raise ValueError("Counter increment must be non-negative")

        label_key = self._labels_to_key(labels)

        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            self._counters[name][label_key] += value

        prom_counter = self._get_or_create_prom_metric(name, labels)
        if prom_counter is not None:
            prom_counter.inc(value)

    # === Gauge Operations ===

    def inc_gauge(
        self, name: str, value: float = 1.0, labels: dict[str, str] | None = None
    ) -> None:
        label_key = self._labels_to_key(labels)
        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            self._gauges[name][label_key] += value

        prom_gauge = self._get_or_create_prom_metric(name, labels)
        if prom_gauge is not None:
            prom_gauge.inc(value)

    def dec_gauge(
        self, name: str, value: float = 1.0, labels: dict[str, str] | None = None
    ) -> None:
        label_key = self._labels_to_key(labels)
        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            self._gauges[name][label_key] -= value

        prom_gauge = self._get_or_create_prom_metric(name, labels)
        if prom_gauge is not None:
            prom_gauge.dec(value)

    # === Histogram Operations ===

    def observe_histogram(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        label_key = self._labels_to_key(labels)

        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            observations = self._histograms[name][label_key]
            observations.append(value)
            # Keep only recent observations to prevent memory growth
            if len(observations) > 10000:
                self._histograms[name][label_key] = observations[-5000:]

        prom_histogram = self._get_or_create_prom_metric(name, labels)
        if prom_histogram is not None:
            prom_histogram.observe(value)

    # === Snapshot Operations ===

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._counters.get(name, {}).get(self._labels_to_key(labels), 0)

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._gauges.get(name, {}).get(self._labels_to_key(labels), 0.0)

    def get_metrics(self) -> dict[str, Any]:
        """
        Get a JSON-serializable snapshot of all metrics.

        Structure::

            {
                "counters": {"metric_name": {"label_key": value, ...}, ...},
                "gauges": {"metric_name": {"label_key": value, ...}, ...},
                "histograms": {"metric_name": {"label_key": {...}, ...}, ...}
            }
        """
        with self._lock:
            counters = {
                name: dict(label_values)
                for name, label_values in self._counters.items()
            }
            gauges = {
                name: dict(label_values) for name, label_values in self._gauges.items()
            }
            histograms: dict[str, dict[str, dict[str, Any]]] = {}
            for name, label_values in self._histograms.items():
                histograms[name] = {}
                for label_key, observations in label_values.items():
                    if observations:
                        histograms[name][label_key] = {
                            "count": len(observations),
                            "sum": sum(observations),
                            "avg": sum(observations) / len(observations),
                            "min": min(observations),
                            "max": max(observations),
                        }

        return {"counters": counters, "gauges": gauges, "histograms": histograms}

    def reset(self) -> None:
        """Reset dict-based metrics (Prometheus metrics keep their values)."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()
            self._label_combinations.clear()

        logger.debug("Metrics collector reset")

    @property
    def prometheus_enabled(self) -> bool:
        return self._enable_prometheus

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry


# =============================================================================
# Singleton Pattern
# =============================================================================

_global_collector: MetricsCollector | None = None
_collector_lock = threading.Lock()


def get_metrics_collector(enable_prometheus: bool = True) -> MetricsCollector:
    """
    Get or create the process-wide default collector.

    Nothing in the library reaches for this on its own. Pass it as
    ``metrics=`` to a Connector (or any component) to share one collector
    across the process.
    """
    global _global_collector

    if _global_collector is None:
        with _collector_lock:
            if _global_collector is None:
                _global_collector = MetricsCollector(
                    enable_prometheus=enable_prometheus
                )

    return _global_collector


def reset_metrics_collector() -> None:
    """Drop the default collector (mainly for testing)."""
    global _global_collector
    with _collector_lock:
        if _global_collector:
            _global_collector.reset()
        _global_collector = None


__all__ = [
    "METRIC_DEFINITIONS",
    "MetricDefinition",
    "MetricsCollector",
    "get_metrics_collector",
    "reset_metrics_collector",
]
