# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Bounded-concurrency batch dispatch.

A Pool prepares every request the way ``Connector.send`` would
(authenticator, header merge, body encoding) and hands the whole batch to
the transport's ``send_many`` with a concurrency bound. It does not route
through the single-request middleware pipeline.

Outcomes are keyed by the caller's keys. A list input is keyed by index.
Results arrive in completion order, never submission order. A failed item
never aborts its siblings; an HTTP failure still records its response under
the item's key. An ``on_response`` or ``on_error`` callback that raises is
logged and the batch carries on.

Cancellation: individual items cannot be cancelled once submitted. A pool
timeout aborts the whole batch; the outcomes of items still in flight at
that moment are undefined and nothing is retried.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Union

from ..exceptions import RequestFailure, StrayRequestError, TransportFailure
from ..observability.collector import MetricsCollector
from ..observability.constants import POOL_IN_FLIGHT, POOL_ITEMS_TOTAL
from ..types.request import Request
from ..types.response import Response

if TYPE_CHECKING:
    from ..client.connector import Connector

logger = logging.getLogger(__name__)

PoolKey = Union[int, str]
PoolInput = Union[Mapping[PoolKey, Request], Sequence[Request]]
ResponseCallback = Callable[[Response, Request, PoolKey], Any]
ErrorCallback = Callable[[RequestFailure, Request, PoolKey], Any]
Emit = Callable[[PoolKey, Response], Awaitable[None]]

DEFAULT_POOL_CONCURRENCY = 5

_DONE = object()


async def _invoke(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


async def _invoke_item_callback(
    name: str, callback: Callable[..., Any] | None, key: PoolKey, *args: Any
) -> None:
    """Run a per-item callback; a failing callback never affects other items."""
    try:
        await _invoke(callback, *args)
    except Exception as e:
        logger.exception(f"Pool {name} callback failed for item {key!r}: {e}")


def _as_failure(error: BaseException, request: Request) -> RequestFailure:
    if isinstance(error, RequestFailure):
        if error.request is None:
            error.request = request
        return error
    failure = TransportFailure(str(error) or type(error).__name__, request=request)
    failure.__cause__ = error
    return failure


class Pool:
    """
    Sends a keyed batch of requests with at most N in flight.

    Example:
        >>> results = await (
        ...     connector.pool({"alice": get_alice, "bob": get_bob})
        ...     .concurrent(2)
        ...     .on_error(lambda failure, request, key: print(key, failure))
        ...     .send()
        ... )
        >>> results["alice"].json()
    """

    def __init__(
        self,
        connector: Connector,
        requests: PoolInput,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.connector = connector
        if isinstance(requests, Mapping):
            self._requests: dict[PoolKey, Request] = dict(requests)
        else:
            self._requests = dict(enumerate(requests))
        self._concurrency = connector.concurrency_limit or DEFAULT_POOL_CONCURRENCY
        self._on_response: ResponseCallback | None = None
        self._on_error: ErrorCallback | None = None
        self._lazy = False
        self._timeout: float | None = None
        self._metrics = metrics

    # === Configuration (chainable) ===

    def concurrent(self, limit: int) -> Pool:
        if limit < 1:
            raise ValueError("concurrency limit must be at least 1")
        self._concurrency = limit
        return self

    def on_response(self, callback: ResponseCallback) -> Pool:
        """Called with (response, request, key) for every fulfilled item."""
        self._on_response = callback
        return self

    def on_error(self, callback: ErrorCallback) -> Pool:
        """Called with (failure, request, key) for every rejected item."""
        self._on_error = callback
        return self

    def lazy(self) -> Pool:
        self._lazy = True
        return self

    def timeout(self, seconds: float) -> Pool:
        """Abort the whole batch after ``seconds``."""
        if seconds <= 0:
            raise ValueError("timeout must be positive")
        self._timeout = seconds
        return self

    @property
    def concurrency(self) -> int:
        return self._concurrency

    # === Dispatch ===

    async def send(self) -> dict[PoolKey, Response]:
        """
        Dispatch the batch and return every recorded response by key.

        Raises:
            StrayRequestError: When the connector prevents stray requests
            TransportFailure: When the pool timeout elapses
        """
        results: dict[PoolKey, Response] = {}
        if self._lazy:
            async for key, response in self.iterate():
                results[key] = response
            return results

        async def record(key: PoolKey, response: Response) -> None:
            results[key] = response

        await self._execute(record)
        return results

    async def iterate(self) -> AsyncIterator[tuple[PoolKey, Response]]:
        """Yield ``(key, response)`` pairs as items complete."""
        queue: asyncio.Queue[Any] = asyncio.Queue()

        async def emit(key: PoolKey, response: Response) -> None:
            await queue.put((key, response))

        async def run() -> None:
            try:
                await self._execute(emit)
            finally:
                await queue.put(_DONE)

        task = asyncio.create_task(run())
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                yield item
            await task
        finally:
            if not task.done():
                task.cancel()

    async def each(self, callback: Callable[[Response, PoolKey], Any]) -> None:
        """Call ``callback(response, key)`` for each pair in completion order."""
        async for key, response in self.iterate():
            await _invoke(callback, response, key)

    async def _execute(self, emit: Emit) -> None:
        keys = list(self._requests)
        if not keys:
            return
        if self.connector.prevent_stray_requests:
            raise StrayRequestError(self._requests[keys[0]])

        prepared = [self.connector.prepare_request(self._requests[k]) for k in keys]
        calls = [self.connector.prepare_call(request) for request in prepared]
        logger.debug(
            f"{self.connector.name}: dispatching {len(calls)} requests "
            f"with concurrency {self._concurrency}"
        )

        resolved = 0

        async def fulfilled(response: Response, index: int) -> None:
            nonlocal resolved
            resolved += 1
            key, request = keys[index], prepared[index]
            response = response.with_request(request)
            self._record_outcome("fulfilled")
            await _invoke_item_callback(
                "on_response", self._on_response, key, response, request, key
            )
            await emit(key, response)

        async def rejected(error: BaseException, index: int) -> None:
            nonlocal resolved
            resolved += 1
            key, request = keys[index], prepared[index]
            failure = _as_failure(error, request)
            self._record_outcome("rejected")
            logger.debug(f"{self.connector.name}: pool item {key!r} failed: {failure}")
            await _invoke_item_callback(
                "on_error", self._on_error, key, failure, request, key
            )
            if failure.response is not None:
                await emit(key, failure.response.with_request(request))

        if self._metrics is not None:
            self._metrics.inc_gauge(POOL_IN_FLIGHT, len(calls))
        dispatch = self.connector.transport.send_many(
            calls, self._concurrency, fulfilled, rejected
        )
        try:
            if self._timeout is None:
                await dispatch
            else:
                await asyncio.wait_for(dispatch, self._timeout)
        except asyncio.TimeoutError as e:
            raise TransportFailure(
                f"Pool of {len(calls)} requests timed out after {self._timeout}s"
            ) from e
        finally:
            unresolved = len(calls) - resolved
            if self._metrics is not None and unresolved > 0:
                self._metrics.dec_gauge(POOL_IN_FLIGHT, unresolved)

    def _record_outcome(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.dec_gauge(POOL_IN_FLIGHT)
            self._metrics.inc_counter(POOL_ITEMS_TOTAL, labels={"outcome": outcome})


__all__ = [
    "DEFAULT_POOL_CONCURRENCY",
    "ErrorCallback",
    "Pool",
    "PoolInput",
    "PoolKey",
    "ResponseCallback",
]
