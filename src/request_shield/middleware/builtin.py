# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""General-purpose middleware: headers, logging, timing and tracing."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any

from ..observability.collector import MetricsCollector
from ..observability.constants import REQUEST_DURATION_SECONDS
from ..protocols.strategies import IdGenerator
from ..security.ids import HexIdGenerator
from ..types.request import Request
from ..types.response import Response
from .pipeline import Next

logger = logging.getLogger(__name__)


class HeaderMiddleware:
    """
    Adds fixed headers to every request.

    Headers already present on the request win unless ``overwrite`` is set.
    """

    def __init__(self, headers: Mapping[str, str], overwrite: bool = False) -> None:
        self.headers = dict(headers)
        self.overwrite = overwrite

    async def handle(self, request: Request, next: Next) -> Response:
        for name, value in self.headers.items():
            if self.overwrite or request.header(name) is None:
                request = request.with_header(name, value)
        return await next(request)


class LoggingMiddleware:
    """
    Logs each request and its response.

    Records are emitted at DEBUG as "HTTP Request" and "HTTP Response" with
    method, endpoint, status and duration in ``extra``. Bodies are only
    included when asked for.
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        log_request_body: bool = False,
        log_response_body: bool = False,
        level: int = logging.DEBUG,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.log_request_body = log_request_body
        self.log_response_body = log_response_body
        self.level = level

    async def handle(self, request: Request, next: Next) -> Response:
        context: dict[str, Any] = {
            "method": request.method,
            "endpoint": request.endpoint,
        }
        request_extra = dict(context)
        if self.log_request_body and request.has_body:
            request_extra["body"] = request.body
        self.logger.log(self.level, "HTTP Request", extra=request_extra)

        started = time.perf_counter()
        response = await next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        response_extra = {
            **context,
            "status": response.status,
            "duration_ms": round(duration_ms, 2),
            "from_cache": response.from_cache,
        }
        if self.log_response_body:
            response_extra["body"] = response.text
        self.logger.log(self.level, "HTTP Response", extra=response_extra)
        return response


class TimingMiddleware:
    """Stamps ``duration_ms`` on the response and feeds the latency histogram."""

    def __init__(self, metrics: MetricsCollector | None = None) -> None:
        self._metrics = metrics

    async def handle(self, request: Request, next: Next) -> Response:
        started = time.perf_counter()
        response = await next(request)
        elapsed = time.perf_counter() - started
        if self._metrics is not None and not response.from_cache:
            self._metrics.observe_histogram(REQUEST_DURATION_SECONDS, elapsed)
        return response.with_duration(elapsed * 1000)


class TracingMiddleware:
    """
    Propagates W3C trace context.

    Each request gets a ``traceparent`` header (``00-{trace}-{span}-01``)
    plus ``X-Trace-Id`` and ``X-Span-Id``. An incoming ``X-Trace-Id`` is
    kept so a caller can continue an existing trace. The ids are stamped on
    the response.
    """

    def __init__(
        self,
        trace_ids: IdGenerator | None = None,
        span_ids: IdGenerator | None = None,
    ) -> None:
        self.trace_ids = trace_ids or HexIdGenerator(32)
        self.span_ids = span_ids or HexIdGenerator(16)

    async def handle(self, request: Request, next: Next) -> Response:
        trace_id = request.header("X-Trace-Id") or self.trace_ids.generate(request)
        span_id = self.span_ids.generate(request)
        request = request.with_headers(
            {
                "traceparent": f"00-{trace_id}-{span_id}-01",
                "X-Trace-Id": trace_id,
                "X-Span-Id": span_id,
            }
        )
        response = await next(request)
        return response.with_trace(trace_id, span_id)


__all__ = [
    "HeaderMiddleware",
    "LoggingMiddleware",
    "TimingMiddleware",
    "TracingMiddleware",
]
