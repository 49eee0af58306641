"""Node settings endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, status
from pydantic import ValidationError

from homenvr.api.dependencies import get_nvr_app
from homenvr.api.errors import APIError, APIErrorCode
from homenvr.models.settings import Settings, SettingsUpdate

if TYPE_CHECKING:
    from homenvr.app import Application

router = APIRouter(tags=["settings"])


@router.get("/api/v1/settings", response_model=Settings)
async def get_settings(app: Application = Depends(get_nvr_app)) -> Settings:
    return await app.settings_store.get_settings()


@router.put("/api/v1/settings", response_model=Settings)
async def update_settings(
    payload: SettingsUpdate, app: Application = Depends(get_nvr_app)
) -> Settings:
    """Apply a partial update. Retention picks it up on its next run."""
    try:
        return await app.settings_store.update_settings(payload)
    except ValidationError as exc:
        raise APIError(
            "Settings are invalid",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=APIErrorCode.SETTINGS_INVALID,
            extra={"errors": [err["msg"] for err in exc.errors()]},
        ) from exc
