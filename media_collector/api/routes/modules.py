"""GET /modules, GET /modules/{name}, GET /events"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from media_collector.api.dependencies import ConfigDep, RecentEventsDep, SupervisorDep
from media_collector.api.schemas import EventResponse, ModuleStatusResponse
from media_collector.config import Settings
from media_collector.supervisor import ModuleSupervisor, StatusSnapshot

router = APIRouter(tags=["modules"])


def _not_declared(name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Module '{name}' is not declared.",
    )


def _describe(
    supervisor: ModuleSupervisor, settings: Settings, snapshot: StatusSnapshot
) -> ModuleStatusResponse:
    config = supervisor.config(snapshot.name)
    if config is None:
        raise _not_declared(snapshot.name)
    rate = config.rate_limit if config.rate_limit is not None else settings.http.default_rate_limit
    limiter = supervisor.limiter(snapshot.name)
    module = supervisor.module(snapshot.name)
    return ModuleStatusResponse(
        name=snapshot.name,
        kind=config.kind,
        enabled=config.enabled,
        status=snapshot.status.value,
        reason=snapshot.reason,
        rate_limit=rate,
        rate_interval=config.rate_interval,
        available_permits=limiter.available() if limiter is not None else None,
        requests_granted=limiter.granted_total if limiter is not None else None,
        queued_tasks=module.tasks.qsize() if module is not None else None,
    )


@router.get("/modules", response_model=list[ModuleStatusResponse], summary="List module statuses")
async def list_modules(
    supervisor: SupervisorDep, settings: ConfigDep
) -> list[ModuleStatusResponse]:
    return [_describe(supervisor, settings, snap) for snap in supervisor.snapshot().values()]


@router.get(
    "/modules/{name}",
    response_model=ModuleStatusResponse,
    summary="Get one module's status",
)
async def get_module(
    name: str, supervisor: SupervisorDep, settings: ConfigDep
) -> ModuleStatusResponse:
    snapshot = supervisor.snapshot().get(name)
    if snapshot is None:
        raise _not_declared(name)
    return _describe(supervisor, settings, snapshot)


@router.get("/events", response_model=list[EventResponse], summary="Recent events")
async def recent_events(
    recent: RecentEventsDep,
    topic: str | None = Query(default=None, description="Only return events of this topic."),
    limit: int = Query(default=100, ge=1, le=1000),
) -> list[EventResponse]:
    if recent is None:
        return []
    events = recent.events(topic)[-limit:]
    return [
        EventResponse(
            topic=e["_topic"],
            timestamp=e["_timestamp"],
            event={k: v for k, v in e.items() if not k.startswith("_")},
        )
        for e in events
    ]
