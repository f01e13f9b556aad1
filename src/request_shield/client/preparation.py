# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Turning a Request into a PreparedCall.

Single sends and pool dispatch share these helpers so a request goes out
identically either way.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from urllib.parse import urlencode

from ..protocols.transport import PreparedCall
from ..types.request import FORM_CONTENT_TYPE, JSON_CONTENT_TYPE, Request


def build_url(base_url: str, request: Request) -> str:
    """Join base URL and endpoint with exactly one slash, then append the query."""
    url = f"{base_url.rstrip('/')}/{request.endpoint.lstrip('/')}"
    if request.query:
        url = f"{url}?{urlencode(request.query, doseq=True)}"
    return url


def merge_headers(
    default_headers: Mapping[str, str], request: Request
) -> dict[str, str]:
    """
    Connector defaults overlaid with request headers (case-insensitive).

    Requests with a body get their Content-Type; JSON requests also ask for
    JSON back unless an Accept header is already present.
    """
    merged: dict[str, str] = {}
    for source in (default_headers, request.headers):
        for name, value in source.items():
            for existing in [k for k in merged if k.lower() == name.lower()]:
                del merged[existing]
            merged[name] = value

    if request.has_body:
        for existing in [k for k in merged if k.lower() == "content-type"]:
            del merged[existing]
        merged["Content-Type"] = request.content_type
    if request.is_json and not any(k.lower() == "accept" for k in merged):
        merged["Accept"] = JSON_CONTENT_TYPE
    return merged


def encode_body(request: Request) -> bytes | None:
    if request.body is None:
        return None
    if request.content_type == FORM_CONTENT_TYPE:
        return urlencode(request.body, doseq=True).encode("utf-8")
    return json.dumps(request.body).encode("utf-8")


def prepare_call(
    base_url: str,
    default_headers: Mapping[str, str],
    request: Request,
    timeout: float | None = None,
) -> PreparedCall:
    return PreparedCall(
        method=request.method,
        url=build_url(base_url, request),
        headers=merge_headers(default_headers, request),
        content=encode_body(request),
        timeout=timeout,
        request=request,
    )


__all__ = ["build_url", "encode_body", "merge_headers", "prepare_call"]
