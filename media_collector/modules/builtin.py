"""Module layer — Built-in module kinds.

``local``
    Provider-less module.  Emits a heartbeat log line every
    ``heartbeat_seconds`` (default 60) until shutdown.  A submitted
    ``heartbeat`` task beats immediately.

``http_poll``
    Polls a JSON ``endpoint`` every ``poll_seconds`` (default 300) through a
    RateLimitedClient bound to the module's limiter and hands each payload
    to the event bus.  A submitted ``poll`` task polls immediately, between
    scheduled polls.  Optional provider fields:

    ``api_key`` / ``api_key_header``     sent with every request
                                         (header defaults to ``X-API-Key``)
    ``max_consecutive_failures``         failed polls tolerated before the
                                         module gives up (default 3)
"""

from __future__ import annotations

from typing import Any

import httpx

from media_collector.exceptions import (
    HttpError,
    ModuleLoadError,
    ModuleRuntimeError,
    RequestAbortedError,
)
from media_collector.modules.base import BaseModule
from media_collector.modules.http import RateLimitedClient, RequestConfig
from media_collector.modules.queue import ModuleTask


def _positive_float(module: BaseModule, key: str, default: float) -> float:
    raw = module.config.get(key, default)
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ModuleLoadError(module.name, f"'{key}' must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ModuleLoadError(module.name, f"'{key}' must be > 0, got {value:g}")
    return value


class LocalModule(BaseModule):
    MODULE_KIND = "local"
    VERSION = "1.0.0"

    def _check_dependencies(self) -> None:
        self.heartbeat_seconds = _positive_float(self, "heartbeat_seconds", 60.0)
        self.beats = 0

    async def run(self) -> None:
        self.log.info("module_running", heartbeat_seconds=self.heartbeat_seconds)
        while not await self.serve_tasks(self.heartbeat_seconds):
            self._beat()
        self.log.info("module_shutting_down", beats=self.beats)

    async def handle_task(self, task: ModuleTask) -> None:
        if task.name != "heartbeat":
            await super().handle_task(task)
            return
        self._beat()

    def _beat(self) -> None:
        self.beats += 1
        self.log.debug("module_heartbeat", beats=self.beats)


class HttpPollModule(BaseModule):
    MODULE_KIND = "http_poll"
    VERSION = "1.0.0"

    # Swapped for httpx.MockTransport in tests.
    transport: httpx.AsyncBaseTransport | None = None

    def _check_dependencies(self) -> None:
        endpoint = self.config.get("endpoint")
        if not isinstance(endpoint, str) or not endpoint.strip():
            raise ModuleLoadError(self.name, "'endpoint' must be a non-empty URL")
        self.endpoint = endpoint
        self.poll_seconds = _positive_float(self, "poll_seconds", 300.0)
        self.max_failures = int(self.config.get("max_consecutive_failures", 3))

        request = RequestConfig()
        api_key = self.config.get("api_key")
        if api_key:
            request = request.with_api_key(
                api_key, header=self.config.get("api_key_header", "X-API-Key")
            )
        self.request = request
        self.polls = 0
        self._failures = 0
        self._client: RateLimitedClient | None = None

    async def run(self) -> None:
        async with RateLimitedClient(
            self.name,
            self.limiter,
            self.http,
            transport=self.transport,
            stop=self._shutdown,
        ) as client:
            self._client = client
            try:
                while not self.shutdown_requested:
                    if not await self._poll():
                        break
                    if await self.serve_tasks(self.poll_seconds):
                        break
            finally:
                self._client = None

    async def handle_task(self, task: ModuleTask) -> None:
        if task.name != "poll":
            await super().handle_task(task)
            return
        await self._poll()

    async def _poll(self) -> bool:
        """Fetch the endpoint once.  Returns False if shutdown cut the request short."""
        if self._client is None:
            raise RuntimeError(f"module '{self.name}' is not running")
        try:
            payload: Any = await self._client.fetch_json(self.endpoint, self.request)
        except RequestAbortedError:
            self.log.info("poll_abandoned", endpoint=self.endpoint)
            return False
        except HttpError as exc:
            self._failures += 1
            self.log.warning(
                "poll_failed",
                endpoint=self.endpoint,
                consecutive_failures=self._failures,
                error=exc.message,
            )
            if self._failures > self.max_failures:
                raise ModuleRuntimeError(
                    self.name,
                    f"{self._failures} consecutive poll failures, last: {exc.message}",
                ) from exc
            return True
        self._failures = 0
        self.polls += 1
        await self.emit_collected(payload, endpoint=self.endpoint)
        return True
