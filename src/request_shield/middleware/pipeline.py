# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Middleware composition.

A middleware wraps the rest of the pipeline. It receives the request and a
``next`` continuation, and may rewrite the request before calling ``next``,
rewrite or replace the response afterwards, or skip ``next`` entirely to
short-circuit the call.

Middleware are either objects with ``async handle(request, next)`` or plain
async callables ``(request, next)``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, Union, runtime_checkable

from ..types.request import Request
from ..types.response import Response

logger = logging.getLogger(__name__)

Next = Callable[[Request], Awaitable[Response]]
"""Continuation representing the remainder of the pipeline."""


@runtime_checkable
class Middleware(Protocol):
    """Object form of a middleware layer."""

    async def handle(self, request: Request, next: Next) -> Response: ...


MiddlewareLike = Union[Middleware, Callable[[Request, Next], Awaitable[Response]]]


def _bind(layer: MiddlewareLike, next: Next) -> Next:
    handle = layer.handle if isinstance(layer, Middleware) else layer

    async def step(request: Request) -> Response:
        return await handle(request, next)

    return step


class MiddlewarePipeline:
    """
    Ordered list of middleware folded around a terminal call.

    The first middleware pushed is the outermost: for ``[A, B]`` around
    terminal ``T`` the order is A before, B before, T, B after, A after.

    Example:
        >>> pipeline = MiddlewarePipeline()
        >>> pipeline.push(HeaderMiddleware({"X-Api-Version": "2"}))
        >>> response = await pipeline.process(request, transport_call)
    """

    def __init__(self, middleware: list[MiddlewareLike] | None = None) -> None:
        self._middleware: list[MiddlewareLike] = list(middleware or [])

    def push(self, middleware: MiddlewareLike) -> MiddlewarePipeline:
        """Append ``middleware`` as the innermost layer."""
        self._middleware.append(middleware)
        return self

    def prepend(self, middleware: MiddlewareLike) -> MiddlewarePipeline:
        """Insert ``middleware`` as the outermost layer."""
        self._middleware.insert(0, middleware)
        return self

    def compose(self, terminal: Next) -> Next:
        """Fold the layers, last to first, into a single continuation."""
        composed = terminal
        for layer in reversed(self._middleware):
            composed = _bind(layer, composed)
        return composed

    async def process(self, request: Request, terminal: Next) -> Response:
        logger.debug(
            f"Processing {request.method} {request.endpoint} through "
            f"{len(self._middleware)} middleware"
        )
        return await self.compose(terminal)(request)

    def count(self) -> int:
        return len(self._middleware)

    def __len__(self) -> int:
        return len(self._middleware)

    def has_middleware(self) -> bool:
        return bool(self._middleware)

    def clear(self) -> None:
        self._middleware.clear()

    @property
    def middleware(self) -> list[MiddlewareLike]:
        """Snapshot of the layers, outermost first."""
        return list(self._middleware)


__all__ = ["Middleware", "MiddlewareLike", "MiddlewarePipeline", "Next"]
