# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Response <-> store record conversion.

Records are plain JSON-compatible dicts so every CacheStore can hold them::

    {"status": int, "headers": {...}, "data": <decoded JSON or None>,
     "content": <text when the body is not JSON>, "cached_at": float}
"""

from __future__ import annotations

import json
from typing import Any

from ..types.response import Response


def serialize_response(response: Response, cached_at: float) -> dict[str, Any]:
    data = response.json()
    record: dict[str, Any] = {
        "status": response.status,
        "headers": dict(response.headers),
        "data": data,
        "cached_at": cached_at,
    }
    if data is None and response.content:
        record["content"] = response.text
    return record


def is_response_record(value: Any) -> bool:
    """Whether ``value`` looks like a record written by serialize_response."""
    return (
        isinstance(value, dict)
        and isinstance(value.get("status"), int)
        and isinstance(value.get("headers", {}), dict)
    )


def restore_response(record: dict[str, Any]) -> Response:
    """Rebuild a Response; body bytes come from ``data`` or the stored text."""
    data = record.get("data")
    if data is not None:
        content = json.dumps(data).encode("utf-8")
    else:
        content = str(record.get("content", "")).encode("utf-8")
    return Response(
        status=int(record["status"]),
        headers=record.get("headers") or {},
        content=content,
        data=data,
    )


__all__ = ["is_response_record", "restore_response", "serialize_response"]
