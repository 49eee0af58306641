"""Export holding-area endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import anyio
from fastapi import APIRouter, Depends, status
from fastapi.responses import FileResponse
from pydantic import BaseModel

from homenvr.api.dependencies import get_nvr_app
from homenvr.api.errors import APIError, APIErrorCode

if TYPE_CHECKING:
    from homenvr.app import Application

router = APIRouter(tags=["exports"])


class ExportEntryResponse(BaseModel):
    filename: str
    size: int
    created_at: datetime
    download_url: str


@router.get("/api/v1/exports", response_model=list[ExportEntryResponse])
async def list_exports(app: Application = Depends(get_nvr_app)) -> list[ExportEntryResponse]:
    """Clips waiting in the holding area, newest first."""
    entries = await app.exporter.list_exports()
    return [
        ExportEntryResponse(
            filename=entry.filename,
            size=entry.size,
            created_at=entry.created_at,
            download_url=f"/api/v1/exports/{entry.filename}",
        )
        for entry in entries
    ]


@router.get("/api/v1/exports/{filename}", response_class=FileResponse)
async def download_export(filename: str, app: Application = Depends(get_nvr_app)) -> FileResponse:
    path = app.exporter.holding_path(filename)
    if path is None or not await anyio.Path(path).is_file():
        raise APIError(
            "Export not found",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=APIErrorCode.EXPORT_NOT_FOUND,
        )
    return FileResponse(path, media_type="video/mp4", filename=filename)
