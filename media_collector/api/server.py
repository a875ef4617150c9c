"""API layer — FastAPI application factory.

``create_app()`` builds the read-only status API around an existing
supervisor so that tests can hand it any supervisor they like.
``serve_status_api()`` runs it in-process next to the supervisor.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Iterator

import uvicorn
from fastapi import FastAPI

from media_collector import __version__
from media_collector.api.routes import health, modules
from media_collector.config import Settings
from media_collector.events.bus import MemoryEventBus
from media_collector.logging import get_logger
from media_collector.supervisor import ModuleSupervisor

log = get_logger(__name__)


def create_app(
    supervisor: ModuleSupervisor,
    settings: Settings | None = None,
    recent_events: MemoryEventBus | None = None,
) -> FastAPI:
    """Create the FastAPI application exposing *supervisor*'s status."""
    app = FastAPI(
        title="Media Collector",
        description="Read-only status of the collector's provider modules.",
        version=__version__,
    )
    app.state.supervisor = supervisor
    app.state.settings = settings or Settings()
    app.state.recent_events = recent_events
    app.state.started_at = time.time()

    app.include_router(health.router)
    app.include_router(modules.router)
    return app


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM to the collector."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


async def serve_status_api(app: FastAPI, host: str, port: int, stop: asyncio.Event) -> None:
    """Serve *app* until *stop* is set."""
    server = _EmbeddedServer(
        uvicorn.Config(app, host=host, port=port, log_config=None, lifespan="off")
    )
    log.info("status_api_starting", host=host, port=port)
    serve_task = asyncio.create_task(server.serve(), name="status-api-server")
    stop_task = asyncio.create_task(stop.wait(), name="status-api-stop")
    try:
        await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        server.should_exit = True
        await serve_task
    finally:
        stop_task.cancel()
    log.info("status_api_stopped")
