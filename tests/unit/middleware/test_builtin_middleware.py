import logging
import re

import pytest

from request_shield.middleware.builtin import (
    HeaderMiddleware,
    LoggingMiddleware,
    TimingMiddleware,
    TracingMiddleware,
)
from request_shield.observability.constants import REQUEST_DURATION_SECONDS
from request_shield.types.request import Request
from request_shield.types.response import Response


class Capture:
    """Terminal call that remembers the request it received."""

    def __init__(self, response=None):
        self.request = None
        self.response = response or Response(200, content=b'{"ok": true}')

    async def __call__(self, request):
        self.request = request
        return self.response.with_request(request)


class FixedIds:
    def __init__(self, value):
        self.value = value

    def generate(self, request=None):
        return self.value


class TestHeaderMiddleware:
    @pytest.mark.asyncio
    async def test_adds_headers(self):
        capture = Capture()
        middleware = HeaderMiddleware({"X-Api-Version": "2"})
        await middleware.handle(Request(), capture)
        assert capture.request.header("x-api-version") == "2"

    @pytest.mark.asyncio
    async def test_existing_header_wins(self):
        capture = Capture()
        middleware = HeaderMiddleware({"X-Api-Version": "2"})
        await middleware.handle(Request(headers={"x-api-version": "1"}), capture)
        assert capture.request.header("X-Api-Version") == "1"

    @pytest.mark.asyncio
    async def test_overwrite(self):
        capture = Capture()
        middleware = HeaderMiddleware({"X-Api-Version": "2"}, overwrite=True)
        await middleware.handle(Request(headers={"x-api-version": "1"}), capture)
        assert capture.request.header("X-Api-Version") == "2"


class TestLoggingMiddleware:
    @pytest.mark.asyncio
    async def test_logs_request_and_response(self, caplog):
        logger = logging.getLogger("test.http")
        middleware = LoggingMiddleware(logger=logger, level=logging.INFO)

        with caplog.at_level(logging.INFO, logger="test.http"):
            await middleware.handle(Request("POST", "/users", body={"a": 1}), Capture())

        request_record, response_record = caplog.records
        assert request_record.getMessage() == "HTTP Request"
        assert request_record.method == "POST"
        assert request_record.endpoint == "/users"
        assert not hasattr(request_record, "body")
        assert response_record.getMessage() == "HTTP Response"
        assert response_record.status == 200
        assert response_record.from_cache is False
        assert response_record.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_bodies_when_enabled(self, caplog):
        logger = logging.getLogger("test.http.bodies")
        middleware = LoggingMiddleware(
            logger=logger, log_request_body=True, log_response_body=True
        )

        with caplog.at_level(logging.DEBUG, logger="test.http.bodies"):
            await middleware.handle(Request("POST", "/users", body={"a": 1}), Capture())

        request_record, response_record = caplog.records
        assert request_record.body == {"a": 1}
        assert response_record.body == '{"ok": true}'


class TestTimingMiddleware:
    @pytest.mark.asyncio
    async def test_stamps_duration_and_observes(self, metrics):
        middleware = TimingMiddleware(metrics)
        response = await middleware.handle(Request(), Capture())

        assert response.duration_ms is not None
        assert response.duration_ms >= 0
        histogram = metrics.get_metrics()["histograms"][REQUEST_DURATION_SECONDS]
        assert histogram[""]["count"] == 1

    @pytest.mark.asyncio
    async def test_cached_responses_not_observed(self, metrics):
        middleware = TimingMiddleware(metrics)
        await middleware.handle(Request(), Capture(Response(200).mark_from_cache()))
        assert REQUEST_DURATION_SECONDS not in metrics.get_metrics()["histograms"]


class TestTracingMiddleware:
    @pytest.mark.asyncio
    async def test_sets_trace_context(self):
        capture = Capture()
        middleware = TracingMiddleware(FixedIds("a" * 32), FixedIds("b" * 16))

        response = await middleware.handle(Request(), capture)

        assert capture.request.header("traceparent") == f"00-{'a' * 32}-{'b' * 16}-01"
        assert capture.request.header("X-Trace-Id") == "a" * 32
        assert capture.request.header("X-Span-Id") == "b" * 16
        assert response.trace_id == "a" * 32
        assert response.span_id == "b" * 16

    @pytest.mark.asyncio
    async def test_continues_incoming_trace(self):
        capture = Capture()
        incoming = "c" * 32
        response = await TracingMiddleware().handle(
            Request(headers={"X-Trace-Id": incoming}), capture
        )
        assert response.trace_id == incoming
        assert capture.request.header("traceparent").startswith(f"00-{incoming}-")

    @pytest.mark.asyncio
    async def test_default_ids_are_valid_hex(self):
        capture = Capture()
        await TracingMiddleware().handle(Request(), capture)
        assert re.fullmatch(
            r"00-[0-9a-f]{32}-[0-9a-f]{16}-01", capture.request.header("traceparent")
        )
