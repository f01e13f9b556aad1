"""
Benchmark: Pipeline Overhead

Measures the overhead the resilience layers add to a single request. The
mock API answers instantly, so any measured time is pure overhead.

Usage:
    pytest benchmarks/test_bench_pipeline_overhead.py -v -s --no-cov
"""

import time

import pytest

from request_shield.caching.keys import CacheKeyGenerator
from request_shield.protocols.transport import PreparedCall
from request_shield.types.policy import (
    CacheSettings,
    CircuitBreakerSettings,
    RateLimitSettings,
    RequestPolicy,
    RetrySettings,
)
from request_shield.types.request import Request

ITERATIONS = 200

FULL_POLICY = RequestPolicy(
    rate_limit=RateLimitSettings(requests=1_000_000, per_seconds=60),
    retry=RetrySettings(times=3),
    circuit_breaker=CircuitBreakerSettings(),
)


async def _time_sends(connector, request, iterations=ITERATIONS):
    # Warmup
    for _ in range(10):
        await connector.send(request)
    start = time.perf_counter()
    for _ in range(iterations):
        await connector.send(request)
    return (time.perf_counter() - start) / iterations * 1000


class TestPipelineOverhead:
    """Benchmark per-request overhead of the resilience layers."""

    @pytest.mark.asyncio
    async def test_overhead_versus_bare_transport(self, connector, bare_transport):
        call = PreparedCall("GET", "https://benchmark.test/users")
        start = time.perf_counter()
        for _ in range(ITERATIONS):
            await bare_transport.send(call)
        bare_ms = (time.perf_counter() - start) / ITERATIONS * 1000
        await bare_transport.aclose()

        plain_ms = await _time_sends(connector, Request("GET", "/users"))
        full_ms = await _time_sends(
            connector, Request("GET", "/users", policy=FULL_POLICY)
        )

        print("\n--- Pipeline Overhead ---")
        print(f"Bare transport:        {bare_ms:.3f}ms per request")
        print(f"Empty policy:          {plain_ms:.3f}ms per request")
        print(f"Limit+retry+circuit:   {full_ms:.3f}ms per request")

        assert full_ms - bare_ms < 5, f"Overhead too high: {full_ms - bare_ms:.3f}ms"

    @pytest.mark.asyncio
    async def test_cache_hit_latency(self, connector):
        """A cache hit never reaches the transport and should stay well under 1ms."""
        request = Request(
            "GET", "/users", query={"page": 1}, policy=RequestPolicy(cache=CacheSettings(ttl=60))
        )
        await connector.send(request)

        avg_ms = await _time_sends(connector, request)

        print("\n--- Cache Hit Latency ---")
        print(f"Average latency: {avg_ms:.3f}ms per request")
        assert avg_ms < 2, f"Cache hit too slow: {avg_ms:.3f}ms"


class TestKeyGeneration:
    def test_key_throughput(self):
        generator = CacheKeyGenerator()
        request = Request(
            "POST",
            "/search",
            query={"q": "resilience", "page": 3, "tags": ["a", "b"]},
            body={"filters": {"status": "open", "labels": list(range(20))}},
        )

        start = time.perf_counter()
        for _ in range(5000):
            generator.generate("benchmark", request)
        elapsed = time.perf_counter() - start
        ops_per_sec = 5000 / elapsed

        print("\n--- Cache Key Generation ---")
        print(f"Throughput: {ops_per_sec:.0f} keys/sec")
        assert ops_per_sec > 5000
