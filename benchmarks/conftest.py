"""
Shared fixtures for benchmark tests.
"""

import httpx
import pytest
import pytest_asyncio

from request_shield.client.connector import Connector
from request_shield.transport.httpx_transport import HttpxTransport


def instant_api(request: httpx.Request) -> httpx.Response:
    """MockTransport handler that answers immediately."""
    return httpx.Response(200, json={"path": request.url.path})


class BenchmarkConnector(Connector):
    """Connector against an in-process API, so timings are pure overhead."""


@pytest_asyncio.fixture
async def connector():
    client = httpx.AsyncClient(transport=httpx.MockTransport(instant_api))
    connector = BenchmarkConnector("https://benchmark.test", HttpxTransport(client=client))
    yield connector
    await client.aclose()


@pytest.fixture
def bare_transport():
    """Transport without any resilience layers, for baseline timings."""
    return HttpxTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(instant_api)))
