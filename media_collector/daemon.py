"""Process wiring — settings → logging → event bus → supervisor.

``run_collector()`` is the single entry point used by the CLI.  It installs
SIGINT/SIGTERM handlers that set a stop event, so an operator's Ctrl-C or a
container stop reaches every running module as an orderly shutdown request.
When ``api.enabled`` is set, the read-only status API is served alongside
the supervisor.
"""

from __future__ import annotations

import asyncio
import signal

from media_collector import __version__
from media_collector.config import Settings
from media_collector.events.bus import (
    EventBus,
    FanoutEventBus,
    LogEventBus,
    MemoryEventBus,
    NullEventBus,
)
from media_collector.logging import configure_logging, get_logger
from media_collector.modules.registry import ModuleRegistry, default_registry
from media_collector.supervisor import ModuleSupervisor, StatusSnapshot

log = get_logger(__name__)


def build_event_bus(settings: Settings, recent: MemoryEventBus | None = None) -> EventBus:
    """Return the event bus described by *settings*.

    *recent*, when given, also receives every event (status API feed).
    """
    backends: list[EventBus] = []
    if settings.logging.events_file is not None:
        backends.append(LogEventBus(settings.logging.events_file))
    if recent is not None:
        backends.append(recent)
    if not backends:
        return NullEventBus()
    if len(backends) == 1:
        return backends[0]
    return FanoutEventBus(backends)


def configure_from_settings(settings: Settings) -> None:
    log_file = settings.logging.log_file()
    configure_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        log_file=str(log_file) if log_file else None,
        rotation=settings.logging.log_rotation,
        console=settings.logging.log_to_console,
    )


def _install_signal_handlers(stop_event: asyncio.Event) -> list[signal.Signals]:
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, sig, stop_event)
        except (NotImplementedError, RuntimeError):
            # Windows event loops / non-main threads: rely on KeyboardInterrupt.
            continue
        installed.append(sig)
    return installed


def _on_signal(sig: signal.Signals, stop_event: asyncio.Event) -> None:
    log.info("shutdown_signal_received", signal=sig.name)
    stop_event.set()


async def run_collector(
    settings: Settings,
    registry: ModuleRegistry | None = None,
    stop_event: asyncio.Event | None = None,
    install_signals: bool = True,
) -> dict[str, StatusSnapshot]:
    """Run every configured module until they finish or a stop is requested."""
    stop_event = stop_event or asyncio.Event()
    recent = MemoryEventBus() if settings.api.enabled else None
    supervisor = ModuleSupervisor(
        registry or default_registry(),
        event_bus=build_event_bus(settings, recent),
        shutdown_timeout=settings.supervisor.shutdown_timeout_seconds,
        http=settings.http,
    )

    installed = _install_signal_handlers(stop_event) if install_signals else []
    api_done = asyncio.Event()
    api_task: asyncio.Task[None] | None = None
    if settings.api.enabled:
        from media_collector.api.server import create_app, serve_status_api

        app = create_app(supervisor, settings, recent_events=recent)
        api_task = asyncio.create_task(
            serve_status_api(app, settings.api.host, settings.api.port, api_done),
            name="status-api",
        )

    log.info("collector_starting", version=__version__, modules=len(settings.modules))
    try:
        statuses = await supervisor.run(settings.modules, stop_event=stop_event)
    finally:
        api_done.set()
        if api_task is not None:
            await asyncio.gather(api_task, return_exceptions=True)
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)

    log.info("collector_stopped", **supervisor.counts())
    return statuses
