"""Event streaming infrastructure — EventBus protocol and implementations.

The EventBus carries every significant runtime occurrence as a structured
dict on a topic.  Two producers exist today:

  ModuleSupervisor ──emit("collector.modules")───► module lifecycle events
  BaseModule       ──emit("collector.collected")─► collected provider data

Collected data is handed off here and never retained by the collector
itself; whichever backend is injected decides where it goes.

Backends:
  - NullEventBus    → default (no-op, zero overhead)
  - LogEventBus     → NDJSON append-only file
  - MemoryEventBus  → bounded in-process buffer (tests, status API)
  - FanoutEventBus  → broadcasts to several backends
"""

from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from collections import deque
from pathlib import Path
from typing import Any

from media_collector.logging import get_logger

log = get_logger(__name__)

# ---------------------------------------------------------------------------
# Standard topic constants
# ---------------------------------------------------------------------------

TOPIC_MODULES = "collector.modules"
TOPIC_COLLECTED = "collector.collected"


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------


class EventBus(ABC):
    """Abstract event bus.  All implementations must be safe for concurrent async use.

    An event is a plain dict.  The bus adds a ``_topic`` key and a
    ``_timestamp`` (Unix epoch float) before forwarding to the backend.
    """

    @abstractmethod
    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        """Publish *event* to *topic*.

        This method must not raise — failures are logged and swallowed so that
        a backend outage never propagates into a module or the supervisor.
        """

    def _stamp(self, topic: str, event: dict[str, Any]) -> dict[str, Any]:
        """Add metadata fields to *event* in-place and return it."""
        event.setdefault("_topic", topic)
        event.setdefault("_timestamp", time.time())
        return event


# ---------------------------------------------------------------------------
# NullEventBus — default, zero overhead
# ---------------------------------------------------------------------------


class NullEventBus(EventBus):
    """Discards all events."""

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        pass


# ---------------------------------------------------------------------------
# LogEventBus — NDJSON file
# ---------------------------------------------------------------------------


class LogEventBus(EventBus):
    """Writes events as NDJSON to a file — one line per event, append-only.

    Usage::

        bus = LogEventBus(Path("./logs/events.ndjson"))
        await bus.emit(TOPIC_MODULES, {"event": "module_started", "module": "mal"})
    """

    def __init__(self, log_file: Path | None = None) -> None:
        self._file = log_file.expanduser() if log_file else None
        self._lock = asyncio.Lock()

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        log.debug("event_bus_emit", topic=topic, event_type=event.get("event"))
        if self._file is None:
            return
        line = json.dumps(event, default=str) + "\n"
        async with self._lock:
            try:
                self._file.parent.mkdir(parents=True, exist_ok=True)
                with self._file.open("a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as exc:
                log.error("event_bus_write_failed", topic=topic, error=str(exc))


# ---------------------------------------------------------------------------
# MemoryEventBus — bounded in-process buffer
# ---------------------------------------------------------------------------


class MemoryEventBus(EventBus):
    """Keeps the most recent *maxlen* events in memory."""

    def __init__(self, maxlen: int = 1000) -> None:
        self._events: deque[dict[str, Any]] = deque(maxlen=maxlen)

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._events.append(self._stamp(topic, event))

    def events(self, topic: str | None = None) -> list[dict[str, Any]]:
        return [e for e in self._events if topic is None or e["_topic"] == topic]

    def clear(self) -> None:
        self._events.clear()


# ---------------------------------------------------------------------------
# FanoutEventBus — broadcast to multiple backends simultaneously
# ---------------------------------------------------------------------------


class FanoutEventBus(EventBus):
    """Routes each event to multiple EventBus backends in parallel."""

    def __init__(self, backends: list[EventBus]) -> None:
        self._backends = backends

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        results = await asyncio.gather(
            *(b.emit(topic, dict(event)) for b in self._backends),
            return_exceptions=True,
        )
        for backend, result in zip(self._backends, results):
            if isinstance(result, Exception):
                log.error(
                    "event_bus_backend_failed",
                    backend=type(backend).__name__,
                    topic=topic,
                    error=str(result),
                )
