# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Simple authenticators applied to every request a connector prepares."""

from __future__ import annotations

from ..types.request import Request


class BearerAuth:
    """``Authorization: Bearer <token>``."""

    def __init__(self, token: str) -> None:
        self.token = token

    def authenticate(self, request: Request) -> Request:
        return request.with_bearer_token(self.token)


class BasicAuth:
    def __init__(self, username: str, password: str) -> None:
        self.username = username
        self.password = password

    def authenticate(self, request: Request) -> Request:
        return request.with_basic_auth(self.username, self.password)


class HeaderAuth:
    """Sets one header to a fixed value, e.g. ``X-Api-Key``."""

    def __init__(self, header: str, value: str) -> None:
        self.header = header
        self.value = value

    def authenticate(self, request: Request) -> Request:
        return request.with_header(self.header, self.value)


class QueryAuth:
    """Adds the credential as a query parameter."""

    def __init__(self, parameter: str, value: str) -> None:
        self.parameter = parameter
        self.value = value

    def authenticate(self, request: Request) -> Request:
        return request.with_query({self.parameter: self.value})


__all__ = ["BasicAuth", "BearerAuth", "HeaderAuth", "QueryAuth"]
