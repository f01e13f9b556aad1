# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Outbound request value object.

A Request is an immutable description of one call to a remote API. Every
mutator returns a new instance, so a request can be shared between
concurrent pool items and middleware layers without copying.
"""

from __future__ import annotations

import base64
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from .policy import RequestPolicy

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

Scalar = str | int | float | bool


@dataclass(frozen=True)
class Request:
    """
    Immutable description of one outbound call.

    Attributes:
        method: HTTP method, upper-cased on construction
        endpoint: Path relative to the connector base URL
        headers: Request-specific headers
        query: Query parameters
        body: JSON-compatible body (mapping or list) or None
        content_type: Body encoding, JSON unless form encoding is requested
        policy: Resolved cache, rate limit, retry and circuit configuration
        key_values: Named values substituted into key templates
        idempotency_key: Explicit idempotency key, if any
    """

    method: str = "GET"
    endpoint: str = "/"
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None
    content_type: str = JSON_CONTENT_TYPE
    policy: RequestPolicy = field(default_factory=RequestPolicy)
    key_values: Mapping[str, Scalar] = field(default_factory=dict)
    idempotency_key: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", dict(self.headers))
        object.__setattr__(self, "query", dict(self.query))
        object.__setattr__(self, "key_values", dict(self.key_values))

    # === Accessors ===

    @property
    def has_body(self) -> bool:
        return self.body is not None

    @property
    def is_json(self) -> bool:
        return self.content_type == JSON_CONTENT_TYPE

    @property
    def is_form(self) -> bool:
        return self.content_type == FORM_CONTENT_TYPE

    def header(self, name: str, default: str | None = None) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def all_headers(self) -> dict[str, str]:
        return dict(self.headers)

    # === Mutators (return new instances) ===

    def with_header(self, name: str, value: str) -> Request:
        headers = {k: v for k, v in self.headers.items() if k.lower() != name.lower()}
        headers[name] = value
        return replace(self, headers=headers)

    def with_headers(self, headers: Mapping[str, str]) -> Request:
        request = self
        for name, value in headers.items():
            request = request.with_header(name, value)
        return request

    def without_header(self, name: str) -> Request:
        headers = {k: v for k, v in self.headers.items() if k.lower() != name.lower()}
        return replace(self, headers=headers)

    def with_query(self, query: Mapping[str, Any]) -> Request:
        return replace(self, query={**self.query, **query})

    def with_body(self, body: Any, content_type: str | None = None) -> Request:
        return replace(self, body=body, content_type=content_type or self.content_type)

    def with_bearer_token(self, token: str) -> Request:
        return self.with_header("Authorization", f"Bearer {token}")

    def with_basic_auth(self, username: str, password: str) -> Request:
        credentials = base64.b64encode(f"{username}:{password}".encode()).decode()
        return self.with_header("Authorization", f"Basic {credentials}")

    def with_idempotency_key(self, key: str) -> Request:
        return replace(self, idempotency_key=key)

    def with_policy(self, policy: RequestPolicy) -> Request:
        return replace(self, policy=policy)

    def with_key_values(self, values: Mapping[str, Scalar]) -> Request:
        return replace(self, key_values={**self.key_values, **values})


__all__ = ["FORM_CONTENT_TYPE", "JSON_CONTENT_TYPE", "Request", "Scalar"]
