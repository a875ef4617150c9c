"""Module layer — Rate-limited provider HTTP client.

Wraps ``httpx.AsyncClient`` so that every attempt (retries included) first
takes a permit from the owning module's RateLimiter.

Response handling in :meth:`RateLimitedClient.fetch_json`:
  - 200        → decoded JSON
  - 404        → ResourceNotFoundError
  - 429 / 403  → retried after ``Retry-After`` seconds, or an exponential
                 backoff capped at ``max_delay_ms``; RateLimitedError once
                 ``max_retries`` is exhausted
  - other      → UnexpectedStatusError

When the client is given a *stop* event, waiting for a permit or for a retry
ends as soon as it is set, with RequestAbortedError.
"""

from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from media_collector.config import HttpConfig, RetryConfig
from media_collector.exceptions import (
    DeserializationError,
    RateLimitedError,
    RequestAbortedError,
    RequestFailedError,
    ResourceNotFoundError,
    UnexpectedStatusError,
)
from media_collector.logging import get_logger
from media_collector.modules.rate_limiter import RateLimiter

log = get_logger(__name__)

_RATE_LIMIT_STATUSES = frozenset({403, 429})

T = TypeVar("T")


@dataclass(frozen=True)
class RequestConfig:
    """Per-request headers, query parameters and retry policy."""

    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    retry: RetryConfig | None = None

    def with_header(self, key: str, value: str) -> "RequestConfig":
        return replace(self, headers={**self.headers, key: value})

    def with_param(self, key: str, value: Any) -> "RequestConfig":
        return replace(self, params={**self.params, key: value})

    def with_api_key(self, api_key: str, header: str = "X-API-Key") -> "RequestConfig":
        return self.with_header(header, api_key)

    def with_bearer_token(self, token: str) -> "RequestConfig":
        return self.with_header("Authorization", f"Bearer {token}")

    def with_basic_auth(self, username: str, password: str) -> "RequestConfig":
        encoded = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
        return self.with_header("Authorization", f"Basic {encoded}")

    def with_retry(self, retry: RetryConfig) -> "RequestConfig":
        return replace(self, retry=retry)


def backoff_delay(retry: RetryConfig, attempt: int) -> float:
    """Exponential backoff in seconds for the given 1-based *attempt*."""
    delay_ms = min(retry.base_delay_ms * 2 ** (attempt - 1), retry.max_delay_ms)
    return delay_ms / 1000.0


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class RateLimitedClient:
    """HTTP client whose every request is gated by one module's RateLimiter.

    Usage::

        async with RateLimitedClient("mal", limiter, settings.http) as client:
            data = await client.fetch_json(url, RequestConfig().with_api_key(key))
    """

    def __init__(
        self,
        name: str,
        limiter: RateLimiter,
        http: HttpConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        stop: asyncio.Event | None = None,
    ) -> None:
        http = http or HttpConfig()
        self.name = name
        self._limiter = limiter
        self._retry = http.retry
        self._sleep = sleep
        self._stop = stop
        self._client = httpx.AsyncClient(
            timeout=http.timeout_seconds,
            headers={"User-Agent": http.user_agent},
            transport=transport,
        )

    async def __aenter__(self) -> "RateLimitedClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_json(self, url: str, request: RequestConfig | None = None) -> Any:
        """GET *url* and decode the JSON body, retrying on provider rate limits."""
        request = request or RequestConfig()
        retry = request.retry or self._retry
        attempt = 0

        while True:
            attempt += 1
            await self._unless_stopped(url, self._limiter.acquire())
            log.debug(
                "http_fetch",
                client=self.name,
                url=url,
                attempt=attempt,
                max_attempts=retry.max_retries + 1,
            )

            try:
                response = await self._client.get(
                    url, headers=request.headers, params=request.params or None
                )
            except httpx.HTTPError as exc:
                log.warning("http_request_failed", client=self.name, url=url, error=str(exc))
                raise RequestFailedError(url, exc) from exc

            status = response.status_code
            if status == 200:
                return self._decode(url, response)

            if status == 404:
                raise ResourceNotFoundError(url, response.text)

            if status in _RATE_LIMIT_STATUSES:
                retry_after = _parse_retry_after(response)
                if attempt > retry.max_retries:
                    log.warning("http_max_retries_exceeded", client=self.name, url=url)
                    raise RateLimitedError(url, retry_after, response.text)
                delay = retry_after if retry_after is not None else backoff_delay(retry, attempt)
                log.info(
                    "http_rate_limited",
                    client=self.name,
                    status=status,
                    retry_in=delay,
                    attempt=attempt,
                )
                await self._unless_stopped(url, self._sleep(delay))
                continue

            raise UnexpectedStatusError(url, status, response.text)

    async def _unless_stopped(self, url: str, waiting: Awaitable[T]) -> T:
        """Await *waiting*, giving it up with RequestAbortedError once stop is set."""
        if self._stop is None:
            return await waiting

        work = asyncio.ensure_future(waiting)
        stopped = asyncio.ensure_future(self._stop.wait())
        try:
            done, _ = await asyncio.wait({work, stopped}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            stopped.cancel()
        if work in done:
            return work.result()

        work.cancel()
        await asyncio.wait({work})
        log.info("http_request_aborted", client=self.name, url=url)
        raise RequestAbortedError(url)

    def _decode(self, url: str, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            log.warning("http_deserialization_failed", client=self.name, url=url)
            raise DeserializationError(url, str(exc)) from exc
