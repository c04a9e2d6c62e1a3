"""Tests for FeedClient retry/backoff behaviour."""

import asyncio

import httpx
import pytest

from busmap.core import feed_client
from busmap.core.feed_client import FeedClient, FeedUnavailableError, retry_delay


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(feed_client, "retry_delay", lambda attempt: 0)


def make_client(handler, max_retries: int = 3) -> FeedClient:
    return FeedClient(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        max_retries=max_retries,
    )


def fetch(client: FeedClient):
    async def run():
        try:
            return await client.fetch_vehicles()
        finally:
            await client.close()

    return asyncio.run(run())


def test_retry_delay_doubles_and_caps():
    assert [retry_delay(a) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]
    assert retry_delay(10) == 30.0


def test_fetch_sends_org_id():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"1": {"current_gps_latitude": 64.1}})

    data = fetch(make_client(handler))
    assert data == {"1": {"current_gps_latitude": 64.1}}
    assert seen[0].url.params["org_id"] == "968"


def test_retries_server_errors_then_succeeds():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={})

    assert fetch(make_client(handler)) == {}
    assert len(calls) == 3


def test_retries_transport_errors():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"a": {}})

    assert fetch(make_client(handler)) == {"a": {}}
    assert len(calls) == 2


def test_gives_up_after_max_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(502)

    with pytest.raises(FeedUnavailableError):
        fetch(make_client(handler, max_retries=3))
    assert len(calls) == 4


def test_client_errors_are_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404)

    with pytest.raises(FeedUnavailableError):
        fetch(make_client(handler))
    assert len(calls) == 1


def test_invalid_json_is_an_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>maintenance</html>")

    with pytest.raises(FeedUnavailableError):
        fetch(make_client(handler))


def test_list_payload_is_keyed_by_index():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"x": 1}, {"x": 2}])

    assert fetch(make_client(handler)) == {"0": {"x": 1}, "1": {"x": 2}}


def test_scalar_payload_is_an_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json="down")

    with pytest.raises(FeedUnavailableError):
        fetch(make_client(handler))
