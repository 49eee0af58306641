"""FastAPI dependency helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

from fastapi import Depends, Request, status

from homenvr.api.errors import APIError, APIErrorCode

if TYPE_CHECKING:
    from homenvr.app import Application


async def get_nvr_app(request: Request) -> Application:
    """Get the Application instance from request state."""
    app = cast("Application | None", getattr(request.app.state, "homenvr", None))
    if app is None:
        raise APIError(
            "Application not initialized",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=APIErrorCode.APP_NOT_INITIALIZED,
        )
    return app


async def require_database(app: Application = Depends(get_nvr_app)) -> None:
    """Ensure the inventory database is reachable for data endpoints."""
    if not await app.store.ping():
        raise APIError(
            "Database unavailable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=APIErrorCode.DB_UNAVAILABLE,
        )
