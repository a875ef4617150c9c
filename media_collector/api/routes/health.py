"""GET /health — liveness plus per-status module counts."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request

from media_collector import __version__
from media_collector.api.dependencies import SupervisorDep
from media_collector.api.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse, summary="Collector health check")
async def health(request: Request, supervisor: SupervisorDep) -> HealthResponse:
    started_at: float = request.app.state.started_at
    return HealthResponse(
        status="ok",
        version=__version__,
        uptime_seconds=round(time.time() - started_at, 2),
        modules=supervisor.counts(),
    )
