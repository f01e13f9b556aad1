# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Response value object and rate limit header parsing.

Responses are produced by the transport, or reconstructed from a cache or
idempotency entry. They are immutable; the ``with_*`` and ``mark_*``
helpers return modified copies.
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .request import Request

HeaderValue = str | list[str]

_MISSING = object()


@dataclass(frozen=True)
class RateLimitInfo:
    """
    Rate limit state advertised by a server or held by a local limiter.

    Attributes:
        limit: Requests allowed per window
        remaining: Requests left in the current window
        reset: Unix timestamp when the window resets
    """

    limit: int | None
    remaining: int | None
    reset: float | None

    def seconds_until_reset(self, now: float | None = None) -> float:
        """Seconds until the window resets, never negative."""
        if self.reset is None:
            return 0.0
        current = time.time() if now is None else now
        return max(0.0, self.reset - current)

    @property
    def exhausted(self) -> bool:
        return self.remaining is not None and self.remaining <= 0


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


@dataclass(frozen=True)
class Response:
    """
    Result of one call, real or replayed.

    ``data`` holds an already-decoded body for replayed responses; for
    transport responses it is None and ``json()`` decodes ``content``
    lazily.
    """

    status: int
    headers: Mapping[str, HeaderValue] = field(default_factory=dict)
    content: bytes = b""
    data: Any = None
    request: Request | None = None
    duration_ms: float | None = None
    from_cache: bool = False
    trace_id: str | None = None
    span_id: str | None = None
    idempotency_key: str | None = None
    was_idempotent_replay: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", dict(self.headers))

    @classmethod
    def make(
        cls,
        data: Any = None,
        status: int = 200,
        headers: Mapping[str, HeaderValue] | None = None,
        request: Request | None = None,
    ) -> Response:
        """Build a response from already-decoded data (used by tests and replays)."""
        content = b"" if data is None else json.dumps(data).encode("utf-8")
        merged = dict(headers or {})
        if data is not None and not any(k.lower() == "content-type" for k in merged):
            merged["Content-Type"] = "application/json"
        return cls(
            status=status,
            headers=merged,
            content=content,
            data=data,
            request=request,
        )

    # === Body ===

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self, key: str | None = None, default: Any = None) -> Any:
        """
        Decoded JSON body, or a value inside it addressed by a dot path.

        Returns ``default`` when the body is not JSON or the path is absent.
        """
        payload = self.data
        if payload is None:
            if not self.content:
                return default
            try:
                payload = json.loads(self.content)
            except ValueError:
                return default
        if key is None:
            return payload
        current: Any = payload
        for part in key.split("."):
            if isinstance(current, Mapping):
                current = current.get(part, _MISSING)
            elif isinstance(current, list) and part.isdigit():
                index = int(part)
                current = current[index] if index < len(current) else _MISSING
            else:
                current = _MISSING
            if current is _MISSING:
                return default
        return current

    # === Headers ===

    def header(self, name: str, default: str | None = None) -> str | None:
        """Case-insensitive header lookup; multi-valued headers return the first."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                if isinstance(value, list):
                    return value[0] if value else default
                return value
        return default

    # === Status ===

    @property
    def successful(self) -> bool:
        return 200 <= self.status < 300

    @property
    def ok(self) -> bool:
        return self.successful

    @property
    def redirect(self) -> bool:
        return 300 <= self.status < 400

    @property
    def client_error(self) -> bool:
        return 400 <= self.status < 500

    @property
    def server_error(self) -> bool:
        return self.status >= 500

    @property
    def failed(self) -> bool:
        return self.status >= 400

    def raise_for_status(self) -> Response:
        """Raise the matching HttpFailure for a 4xx/5xx response."""
        if self.failed:
            from ..exceptions import HttpFailure

            raise HttpFailure.from_response(self)
        return self

    # === Rate limit headers ===

    def rate_limit(self) -> RateLimitInfo | None:
        """Parse X-RateLimit-* headers, or None when the server sent none."""
        limit = _parse_int(self.header("X-RateLimit-Limit"))
        remaining = _parse_int(self.header("X-RateLimit-Remaining"))
        reset_raw = self.header("X-RateLimit-Reset")
        reset: float | None = None
        if reset_raw is not None:
            try:
                reset = float(reset_raw)
            except ValueError:
                reset = None
        if limit is None and remaining is None and reset is None:
            return None
        return RateLimitInfo(limit=limit, remaining=remaining, reset=reset)

    def retry_after(self, now: float | None = None) -> float | None:
        """Seconds from the Retry-After header (delta seconds or HTTP date)."""
        value = self.header("Retry-After")
        if value is None:
            return None
        value = value.strip()
        try:
            return max(0.0, float(value))
        except ValueError:
            pass
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        current = (
            datetime.now(timezone.utc)
            if now is None
            else datetime.fromtimestamp(now, timezone.utc)
        )
        return max(0.0, (when - current).total_seconds())

    # === Mutators (return new instances) ===

    def with_request(self, request: Request) -> Response:
        return replace(self, request=request)

    def with_duration(self, duration_ms: float) -> Response:
        return replace(self, duration_ms=duration_ms)

    def mark_from_cache(self) -> Response:
        return replace(self, from_cache=True)

    def with_trace(self, trace_id: str, span_id: str) -> Response:
        return replace(self, trace_id=trace_id, span_id=span_id)

    def with_idempotency_key(self, key: str) -> Response:
        return replace(self, idempotency_key=key)

    def mark_idempotent_replay(self) -> Response:
        return replace(self, was_idempotent_replay=True)

    def with_status(self, status: int) -> Response:
        return replace(self, status=status)

    def with_header(self, name: str, value: HeaderValue) -> Response:
        headers = {k: v for k, v in self.headers.items() if k.lower() != name.lower()}
        headers[name] = value
        return replace(self, headers=headers)

    def with_headers(self, headers: Mapping[str, HeaderValue]) -> Response:
        response = self
        for name, value in headers.items():
            response = response.with_header(name, value)
        return response

    def with_json(self, data: Any) -> Response:
        return replace(
            self, data=data, content=json.dumps(data).encode("utf-8")
        )


__all__ = ["HeaderValue", "RateLimitInfo", "Response"]
