# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Observability for request-shield.

Exports the metrics collector and the metric name constants used by the
cache, rate limiter, circuit breaker, retry middleware and pool.
"""

from .collector import (
    METRIC_DEFINITIONS,
    MetricDefinition,
    MetricsCollector,
    get_metrics_collector,
    reset_metrics_collector,
)
from .constants import (
    CACHE_HITS_TOTAL,
    CACHE_INVALIDATIONS_TOTAL,
    CACHE_MISSES_TOTAL,
    CACHE_WRITES_TOTAL,
    CIRCUIT_REJECTIONS_TOTAL,
    CIRCUIT_TRANSITIONS_TOTAL,
    LATENCY_BUCKETS,
    METRIC_PREFIX,
    POOL_IN_FLIGHT,
    POOL_ITEMS_TOTAL,
    RATE_LIMIT_REJECTIONS_TOTAL,
    REQUEST_DURATION_SECONDS,
    RETRIES_TOTAL,
)

__all__ = [
    "CACHE_HITS_TOTAL",
    "CACHE_INVALIDATIONS_TOTAL",
    "CACHE_MISSES_TOTAL",
    "CACHE_WRITES_TOTAL",
    "CIRCUIT_REJECTIONS_TOTAL",
    "CIRCUIT_TRANSITIONS_TOTAL",
    "LATENCY_BUCKETS",
    "METRIC_DEFINITIONS",
    "METRIC_PREFIX",
    "POOL_IN_FLIGHT",
    "POOL_ITEMS_TOTAL",
    "RATE_LIMIT_REJECTIONS_TOTAL",
    "REQUEST_DURATION_SECONDS",
    "RETRIES_TOTAL",
    "MetricDefinition",
    "MetricsCollector",
    "get_metrics_collector",
    "reset_metrics_collector",
]
