# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Default transport on top of ``httpx.AsyncClient``.

Only network-level problems (connection errors, timeouts, protocol errors)
become TransportFailure. Any HTTP status is a Response; ``send_many`` can
optionally report 4xx/5xx through ``on_rejected`` as HttpFailure so batch
callers see HTTP failures on the error path with the response attached.
In a batch, any other error raised while sending one item (an unencodable
header, an invalid URL) is reported through ``on_rejected`` for that item
only.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence

import httpx

from ..exceptions import HttpFailure, TransportFailure
from ..protocols.transport import FulfilledCallback, PreparedCall, RejectedCallback
from ..types.response import HeaderValue, Response

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def _headers_from(headers: httpx.Headers) -> dict[str, HeaderValue]:
    collected: dict[str, list[str]] = {}
    for name, value in headers.multi_items():
        collected.setdefault(name, []).append(value)
    return {
        name: values[0] if len(values) == 1 else values
        for name, values in collected.items()
    }


class HttpxTransport:
    """
    TransportProtocol implementation backed by httpx.

    Args:
        client: Existing AsyncClient to use; one is created (and owned) when
            omitted
        timeout: Default timeout in seconds for calls that set none
        http_errors: Report 4xx/5xx batch items through ``on_rejected``

    Example:
        >>> transport = HttpxTransport(client=httpx.AsyncClient(transport=mock))
        >>> response = await transport.send(PreparedCall("GET", "https://api.test/users"))
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        http_errors: bool = True,
    ) -> None:
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(timeout=timeout)
        self.timeout = timeout
        self.http_errors = http_errors

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def send(self, call: PreparedCall) -> Response:
        started = time.perf_counter()
        try:
            raw = await self._client.request(
                call.method,
                call.url,
                headers=dict(call.headers),
                content=call.content,
                timeout=call.timeout if call.timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            logger.debug(f"Timeout on {call.method} {call.url}: {e}")
            raise TransportFailure(
                f"Timed out calling {call.method} {call.url}", request=call.request
            ) from e
        except httpx.HTTPError as e:
            logger.debug(f"Transport error on {call.method} {call.url}: {e}")
            raise TransportFailure(
                f"Could not reach {call.method} {call.url}: {e}", request=call.request
            ) from e

        return Response(
            status=raw.status_code,
            headers=_headers_from(raw.headers),
            content=raw.content,
            request=call.request,
            duration_ms=(time.perf_counter() - started) * 1000,
        )

    async def send_many(
        self,
        calls: Sequence[PreparedCall],
        concurrency: int,
        on_fulfilled: FulfilledCallback,
        on_rejected: RejectedCallback,
    ) -> None:
        """
        Send ``calls`` with at most ``concurrency`` in flight.

        Each outcome is reported with the call's index in ``calls``. One
        item's failure never stops its siblings.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        semaphore = asyncio.Semaphore(concurrency)

        async def run(index: int, call: PreparedCall) -> None:
            async with semaphore:
                try:
                    response = await self.send(call)
                except TransportFailure as e:
                    await on_rejected(e, index)
                    return
                except Exception as e:
                    # e.g. a header value httpx cannot encode or an invalid URL
                    logger.debug(f"Could not send {call.method} {call.url}: {e!r}")
                    await on_rejected(e, index)
                    return
            if self.http_errors and response.failed:
                await on_rejected(HttpFailure.from_response(response, call.request), index)
            else:
                await on_fulfilled(response, index)

        await asyncio.gather(*(run(i, call) for i, call in enumerate(calls)))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["DEFAULT_TIMEOUT", "HttpxTransport"]
