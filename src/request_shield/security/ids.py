# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Identifier generators for idempotency keys and trace context."""

from __future__ import annotations

import secrets
import uuid

from ..types.request import Request


class UuidKeyGenerator:
    """Random UUID4 strings."""

    def generate(self, request: Request | None = None) -> str:
        return str(uuid.uuid4())


class HexIdGenerator:
    """
    Random lowercase hex strings of a fixed length.

    W3C trace context uses 32 characters for trace ids and 16 for span ids.
    """

    def __init__(self, length: int = 32) -> None:
        if length < 2 or length % 2:
            raise ValueError("length must be an even number >= 2")
        self.length = length

    def generate(self, request: Request | None = None) -> str:
        value = secrets.token_hex(self.length // 2)
        # All-zero ids are invalid in trace context
        while not value.strip("0"):
            value = secrets.token_hex(self.length // 2)
        return value


__all__ = ["HexIdGenerator", "UuidKeyGenerator"]
