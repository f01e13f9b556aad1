# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Metric name constants following Prometheus naming conventions.

All metric names use the ``request_shield_`` prefix.

Naming Conventions:
    - Counter metrics end with `_total`
    - Histogram metrics for time end with `_seconds`
    - Gauges use present-tense descriptive names

Label Best Practices:
    Limiter and circuit keys are caller-controlled; keep them categorical
    (one per API or tenant tier), never per-user or per-request.
"""

# =============================================================================
# Global Prefix
# =============================================================================

METRIC_PREFIX = "request_shield"
"""Prefix for all Prometheus metrics in this library."""


# =============================================================================
# Cache Metrics (caching/cache.py)
# =============================================================================

CACHE_HITS_TOTAL = f"{METRIC_PREFIX}_cache_hits_total"
"""Total responses served from the cache."""

CACHE_MISSES_TOTAL = f"{METRIC_PREFIX}_cache_misses_total"
"""Total cacheable lookups that found nothing."""

CACHE_WRITES_TOTAL = f"{METRIC_PREFIX}_cache_writes_total"
"""Total responses written to the cache."""

CACHE_INVALIDATIONS_TOTAL = f"{METRIC_PREFIX}_cache_invalidations_total"
"""Total cache entries removed by tag invalidation or forget."""


# =============================================================================
# Rate Limit Metrics (ratelimit/limiter.py)
# =============================================================================

RATE_LIMIT_REJECTIONS_TOTAL = f"{METRIC_PREFIX}_rate_limit_rejections_total"
"""Total requests rejected by the local rate limiter."""


# =============================================================================
# Circuit Breaker Metrics (resilience/circuit.py)
# =============================================================================

CIRCUIT_TRANSITIONS_TOTAL = f"{METRIC_PREFIX}_circuit_transitions_total"
"""Total circuit state transitions, labelled by the state entered."""

CIRCUIT_REJECTIONS_TOTAL = f"{METRIC_PREFIX}_circuit_rejections_total"
"""Total calls rejected by an open or saturated circuit."""


# =============================================================================
# Retry Metrics (resilience/retry.py)
# =============================================================================

RETRIES_TOTAL = f"{METRIC_PREFIX}_retries_total"
"""Total retry attempts, labelled by reason (transport, http_503, rate_limit, ...)."""


# =============================================================================
# Pool Metrics (pool/dispatcher.py)
# =============================================================================

POOL_ITEMS_TOTAL = f"{METRIC_PREFIX}_pool_items_total"
"""Total pool items resolved, labelled by outcome (fulfilled, rejected)."""

POOL_IN_FLIGHT = f"{METRIC_PREFIX}_pool_in_flight"
"""Pool items currently handed to the transport."""


# =============================================================================
# Request Timing (middleware/builtin.py)
# =============================================================================

REQUEST_DURATION_SECONDS = f"{METRIC_PREFIX}_request_duration_seconds"
"""Wall-clock duration of calls that reached the transport."""

LATENCY_BUCKETS = [0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
"""Histogram buckets for request latency in seconds."""


__all__ = [
    "CACHE_HITS_TOTAL",
    "CACHE_INVALIDATIONS_TOTAL",
    "CACHE_MISSES_TOTAL",
    "CACHE_WRITES_TOTAL",
    "CIRCUIT_REJECTIONS_TOTAL",
    "CIRCUIT_TRANSITIONS_TOTAL",
    "LATENCY_BUCKETS",
    "METRIC_PREFIX",
    "POOL_IN_FLIGHT",
    "POOL_ITEMS_TOTAL",
    "RATE_LIMIT_REJECTIONS_TOTAL",
    "REQUEST_DURATION_SECONDS",
    "RETRIES_TOTAL",
]
