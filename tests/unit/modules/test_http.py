"""Unit tests — RateLimitedClient and RequestConfig (http.py).

HTTP traffic is served by ``httpx.MockTransport``; backoff sleeps are
recorded instead of awaited, except where a stop event has to cut them short.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from media_collector.config import HttpConfig, RetryConfig
from media_collector.exceptions import (
    DeserializationError,
    RateLimitedError,
    RequestAbortedError,
    RequestFailedError,
    ResourceNotFoundError,
    UnexpectedStatusError,
)
from media_collector.modules.http import RateLimitedClient, RequestConfig, backoff_delay
from media_collector.modules.rate_limiter import RateLimiter

pytestmark = pytest.mark.unit

URL = "https://api.example.org/anime/1"


class Recorder:
    def __init__(self) -> None:
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


def _client(
    handler, limiter: RateLimiter | None = None, recorder: Recorder | None = None
) -> RateLimitedClient:
    recorder = recorder or Recorder()
    return RateLimitedClient(
        "mal",
        limiter or RateLimiter("mal", 100, 1.0),
        HttpConfig(user_agent="test-agent/1.0"),
        transport=httpx.MockTransport(handler),
        sleep=recorder.sleep,
    )


class TestRequestConfig:
    def test_builders_do_not_mutate(self) -> None:
        base = RequestConfig()
        derived = base.with_header("Accept", "application/json").with_param("page", 2)
        assert base.headers == {} and base.params == {}
        assert derived.headers == {"Accept": "application/json"}
        assert derived.params == {"page": 2}

    def test_api_key_header(self) -> None:
        assert RequestConfig().with_api_key("k").headers == {"X-API-Key": "k"}
        assert RequestConfig().with_api_key("k", header="X-MAL-CLIENT-ID").headers == {
            "X-MAL-CLIENT-ID": "k"
        }

    def test_bearer_and_basic(self) -> None:
        assert RequestConfig().with_bearer_token("t").headers["Authorization"] == "Bearer t"
        assert (
            RequestConfig().with_basic_auth("user", "pass").headers["Authorization"]
            == "Basic dXNlcjpwYXNz"
        )

    def test_backoff_is_exponential_and_capped(self) -> None:
        retry = RetryConfig(base_delay_ms=1000, max_delay_ms=3000)
        assert [backoff_delay(retry, n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 3.0, 3.0]


class TestFetchJson:
    async def test_success(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"title": "Cowboy Bebop"})

        async with _client(handler) as client:
            data = await client.fetch_json(URL, RequestConfig().with_api_key("k").with_param("q", "x"))

        assert data == {"title": "Cowboy Bebop"}
        assert seen[0].headers["X-API-Key"] == "k"
        assert seen[0].headers["User-Agent"] == "test-agent/1.0"
        assert seen[0].url.params["q"] == "x"

    async def test_not_found(self) -> None:
        async with _client(lambda r: httpx.Response(404, text="nope")) as client:
            with pytest.raises(ResourceNotFoundError) as exc_info:
                await client.fetch_json(URL)
        assert exc_info.value.url == URL
        assert exc_info.value.body == "nope"

    async def test_unexpected_status(self) -> None:
        async with _client(lambda r: httpx.Response(500, text="boom")) as client:
            with pytest.raises(UnexpectedStatusError) as exc_info:
                await client.fetch_json(URL)
        assert exc_info.value.status == 500
        assert exc_info.value.message == "unexpected status code 500: boom"

    async def test_invalid_json(self) -> None:
        async with _client(lambda r: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(DeserializationError):
                await client.fetch_json(URL)

    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(RequestFailedError):
                await client.fetch_json(URL)

    async def test_retry_after_honoured(self) -> None:
        responses = iter(
            [
                httpx.Response(429, headers={"Retry-After": "7"}),
                httpx.Response(200, json=[1, 2]),
            ]
        )
        recorder = Recorder()
        async with _client(lambda r: next(responses), recorder=recorder) as client:
            assert await client.fetch_json(URL) == [1, 2]
        assert recorder.sleeps == [7.0]

    async def test_forbidden_uses_backoff_then_gives_up(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(403, text="slow down")

        recorder = Recorder()
        request = RequestConfig().with_retry(RetryConfig(max_retries=2, base_delay_ms=100))
        async with _client(handler, recorder=recorder) as client:
            with pytest.raises(RateLimitedError) as exc_info:
                await client.fetch_json(URL, request)

        assert calls == 3
        assert recorder.sleeps == [0.1, 0.2]
        assert exc_info.value.retry_after is None
        assert exc_info.value.body == "slow down"

    async def test_every_attempt_takes_a_permit(self) -> None:
        responses = iter([httpx.Response(429), httpx.Response(429), httpx.Response(200, json={})])
        limiter = RateLimiter("mal", 100, 1.0)
        async with _client(lambda r: next(responses), limiter=limiter) as client:
            await client.fetch_json(URL)
        assert limiter.granted_total == 3


class TestStopEvent:
    async def test_stop_cuts_retry_wait_short(self) -> None:
        stop = asyncio.Event()
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(429, headers={"Retry-After": "30"})

        async def sleep(seconds: float) -> None:
            stop.set()
            await asyncio.sleep(seconds)

        client = RateLimitedClient(
            "mal",
            RateLimiter("mal", 100, 1.0),
            transport=httpx.MockTransport(handler),
            sleep=sleep,
            stop=stop,
        )
        async with client:
            with pytest.raises(RequestAbortedError) as exc_info:
                await asyncio.wait_for(client.fetch_json(URL), timeout=1.0)
        assert calls == 1
        assert exc_info.value.url == URL

    async def test_stop_cuts_permit_wait_short(self) -> None:
        stop = asyncio.Event()
        limiter = RateLimiter("mal", 1, 3600.0)
        client = RateLimitedClient(
            "mal",
            limiter,
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})),
            stop=stop,
        )
        async with client:
            await client.fetch_json(URL)
            asyncio.get_running_loop().call_later(0.01, stop.set)
            with pytest.raises(RequestAbortedError):
                await asyncio.wait_for(client.fetch_json(URL), timeout=1.0)
        assert limiter.granted_total == 1

    async def test_unset_stop_changes_nothing(self) -> None:
        stop = asyncio.Event()
        responses = iter([httpx.Response(429), httpx.Response(200, json={"ok": True})])
        recorder = Recorder()
        client = RateLimitedClient(
            "mal",
            RateLimiter("mal", 100, 1.0),
            transport=httpx.MockTransport(lambda r: next(responses)),
            sleep=recorder.sleep,
            stop=stop,
        )
        async with client:
            assert await client.fetch_json(URL) == {"ok": True}
        assert recorder.sleeps == [1.0]
