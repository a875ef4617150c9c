"""API layer — FastAPI dependency injection.

The supervisor and settings are created once at startup and injected via
FastAPI's dependency system.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from media_collector.config import Settings
from media_collector.events.bus import MemoryEventBus
from media_collector.supervisor import ModuleSupervisor


def get_supervisor(request: Request) -> ModuleSupervisor:
    return request.app.state.supervisor  # type: ignore[no-any-return]


def get_config(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[no-any-return]


def get_recent_events(request: Request) -> MemoryEventBus | None:
    return getattr(request.app.state, "recent_events", None)


# Shorthand type aliases for route signatures.
SupervisorDep = Annotated[ModuleSupervisor, Depends(get_supervisor)]
ConfigDep = Annotated[Settings, Depends(get_config)]
RecentEventsDep = Annotated[MemoryEventBus | None, Depends(get_recent_events)]
