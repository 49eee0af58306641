"""API route registration."""

from __future__ import annotations

from fastapi import Depends, FastAPI

from homenvr.api.dependencies import require_database
from homenvr.api.routes import cameras, exports, health, recordings, settings


def register_routes(app: FastAPI) -> None:
    """Register all API routers."""
    app.include_router(health.router)
    app.include_router(cameras.router)
    app.include_router(recordings.router, dependencies=[Depends(require_database)])
    app.include_router(exports.router)
    app.include_router(settings.router, dependencies=[Depends(require_database)])
