# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Protocol for the transport that performs network I/O."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..types.request import Request
    from ..types.response import Response


@dataclass(frozen=True)
class PreparedCall:
    """
    A fully resolved call handed to the transport.

    Attributes:
        method: HTTP method
        url: Absolute URL including the query string
        headers: Final merged headers
        content: Encoded body bytes, or None
        timeout: Per-call timeout in seconds, or None for the transport default
        request: The originating Request, for attaching to responses and errors
    """

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    content: bytes | None = None
    timeout: float | None = None
    request: Request | None = None


FulfilledCallback = Callable[["Response", int], Awaitable[Any]]
RejectedCallback = Callable[[BaseException, int], Awaitable[Any]]


@runtime_checkable
class TransportProtocol(Protocol):
    """
    Minimal protocol for the network layer.

    The resilience layer never opens sockets itself. It needs exactly two
    capabilities: send one call and get one response, and send a batch of
    calls with bounded concurrency, reporting each outcome by the call's
    position in the batch.
    """

    async def send(self, call: PreparedCall) -> Response:
        """
        Send one call.

        Raises:
            TransportFailure: When no response could be obtained
        """
        ...

    async def send_many(
        self,
        calls: Sequence[PreparedCall],
        concurrency: int,
        on_fulfilled: FulfilledCallback,
        on_rejected: RejectedCallback,
    ) -> None:
        """Send a batch with at most ``concurrency`` calls in flight."""
        ...

    async def aclose(self) -> None: ...


__all__ = [
    "FulfilledCallback",
    "PreparedCall",
    "RejectedCallback",
    "TransportProtocol",
]
