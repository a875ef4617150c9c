"""API layer — Response schemas.

These are the external API contracts.  They are intentionally separate from
the supervisor's internal types so the API can evolve on its own.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    uptime_seconds: float
    modules: dict[str, int] = Field(
        default_factory=dict,
        description="Number of modules per lifecycle status.",
    )


class ModuleStatusResponse(BaseModel):
    name: str
    kind: str
    enabled: bool
    status: str
    reason: str | None = None
    rate_limit: float | None = None
    rate_interval: float
    available_permits: int | None = Field(
        default=None,
        description="Tokens currently free in the module's rate limiter (running modules only).",
    )
    requests_granted: int | None = None
    queued_tasks: int | None = Field(
        default=None,
        description="Tasks waiting in the module's task queue (started modules only).",
    )


class EventResponse(BaseModel):
    topic: str
    timestamp: float
    event: dict[str, Any]
