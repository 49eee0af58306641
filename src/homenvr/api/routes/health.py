"""Health endpoint."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from homenvr.api.dependencies import get_nvr_app

if TYPE_CHECKING:
    from homenvr.app import Application

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    node_name: str
    database: str
    monitor: str
    cameras_recording: int
    uptime_seconds: float


async def _compute_health_response(app: Application) -> HealthResponse | JSONResponse:
    running = app.is_running
    db_ok = await app.store.ping()
    monitor_ok = app.monitor.is_healthy() or not app.config.monitor.enabled

    if not running:
        status = "unhealthy"
    elif db_ok and monitor_ok:
        status = "healthy"
    else:
        status = "degraded"

    response = HealthResponse(
        status=status,
        node_name=app.config.node_name,
        database="connected" if db_ok else "unavailable",
        monitor="running" if monitor_ok else "stopped",
        cameras_recording=len(app.supervisor.active_recordings()),
        uptime_seconds=app.uptime_seconds,
    )
    if not running:
        return JSONResponse(status_code=503, content=response.model_dump(mode="json"))
    return response


@router.get("/health", response_model=HealthResponse, include_in_schema=False)
async def get_root_health(
    app: Application = Depends(get_nvr_app),
) -> HealthResponse | JSONResponse:
    """Unversioned liveness probe."""
    return await _compute_health_response(app)


@router.get("/api/v1/health", response_model=HealthResponse)
async def get_health(app: Application = Depends(get_nvr_app)) -> HealthResponse | JSONResponse:
    return await _compute_health_response(app)
