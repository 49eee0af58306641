"""Recording inventory, reconciliation and export endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from homenvr.api.dependencies import get_nvr_app
from homenvr.api.errors import APIError, APIErrorCode
from homenvr.errors import (
    CameraNotFoundError,
    ExportFailedError,
    ExportRangeInvalidError,
    ExportRangeNotFoundError,
    RecordingActiveError,
    RecordingNotFoundError,
    StorageFilesystemError,
)
from homenvr.models.enums import ExportMode, RecordingStatus
from homenvr.models.recording import Recording

if TYPE_CHECKING:
    from homenvr.app import Application

router = APIRouter(tags=["recordings"])


class RecordingResponse(BaseModel):
    id: int
    camera_id: str
    filename: str
    start_time: datetime
    end_time: datetime
    duration_s: float
    size: int
    status: RecordingStatus


class RecordingDatesResponse(BaseModel):
    dates: list[date]


class SyncResponse(BaseModel):
    cameras: int
    scanned: int
    created: int
    updated: int
    unchanged: int
    anomalies: int
    degraded: int
    errors: int


class DeleteResponse(BaseModel):
    deleted: int


class ExportRequest(BaseModel):
    camera_id: str
    start: datetime
    end: datetime
    destination: str | None = Field(
        default=None,
        description="Directory or file path; omit to use the export holding area",
    )


class ExportResponse(BaseModel):
    filename: str
    path: str
    is_internal: bool
    mode: ExportMode
    offset_s: float
    duration_s: float
    segments: list[str]
    download_url: str | None = None


def _recording_response(record: Recording) -> RecordingResponse:
    if record.id is None:
        raise RuntimeError("Recording returned from inventory has no id")
    return RecordingResponse(
        id=record.id,
        camera_id=record.camera_id,
        filename=record.filename,
        start_time=record.start_time,
        end_time=record.end_time,
        duration_s=record.duration_s,
        size=record.size,
        status=record.status,
    )


@router.get("/api/v1/recordings", response_model=list[RecordingResponse])
async def list_recordings(
    camera_id: str | None = None,
    day: date | None = Query(default=None, alias="date"),
    app: Application = Depends(get_nvr_app),
) -> list[RecordingResponse]:
    """List recordings newest first, filtered by camera and local date."""
    records = await app.repository.list_recordings(camera_id=camera_id, day=day)
    return [_recording_response(record) for record in records]


@router.get("/api/v1/recordings/dates", response_model=RecordingDatesResponse)
async def list_recording_dates(
    app: Application = Depends(get_nvr_app),
) -> RecordingDatesResponse:
    """Local calendar days that have footage, newest first."""
    return RecordingDatesResponse(dates=await app.repository.list_dates())


@router.post("/api/v1/recordings/sync", response_model=SyncResponse)
async def sync_recordings(app: Application = Depends(get_nvr_app)) -> SyncResponse:
    """Reconcile the inventory with the recordings directory."""
    report = await app.sync_recordings()
    return SyncResponse(
        cameras=report.cameras,
        scanned=report.scanned,
        created=report.created,
        updated=report.updated,
        unchanged=report.unchanged,
        anomalies=report.anomalies,
        degraded=report.degraded,
        errors=report.errors,
    )


@router.delete("/api/v1/recordings/purge", response_model=DeleteResponse)
async def purge_recordings(app: Application = Depends(get_nvr_app)) -> DeleteResponse:
    """Delete every recording file and inventory record."""
    return DeleteResponse(deleted=await app.purge_recordings())


@router.delete("/api/v1/recordings/{recording_id}", response_model=DeleteResponse)
async def delete_recording(
    recording_id: int, app: Application = Depends(get_nvr_app)
) -> DeleteResponse:
    """Delete one recording's file and record."""
    try:
        await app.delete_recording(recording_id)
    except RecordingNotFoundError as exc:
        raise APIError(
            str(exc),
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=APIErrorCode.RECORDING_NOT_FOUND,
        ) from exc
    except RecordingActiveError as exc:
        raise APIError(
            str(exc),
            status_code=status.HTTP_409_CONFLICT,
            error_code=APIErrorCode.RECORDING_ACTIVE,
        ) from exc
    except StorageFilesystemError as exc:
        raise APIError(
            str(exc),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code=APIErrorCode.RECORDING_DELETE_FAILED,
        ) from exc
    return DeleteResponse(deleted=1)


@router.post("/api/v1/recordings/export", response_model=ExportResponse)
async def export_clip(
    payload: ExportRequest, app: Application = Depends(get_nvr_app)
) -> ExportResponse:
    """Cut [start, end] of one camera into a clip."""
    try:
        result = await app.export(
            payload.camera_id, payload.start, payload.end, payload.destination
        )
    except CameraNotFoundError as exc:
        raise APIError(
            str(exc),
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=APIErrorCode.CAMERA_NOT_FOUND,
        ) from exc
    except ExportRangeInvalidError as exc:
        raise APIError(
            str(exc),
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=APIErrorCode.EXPORT_RANGE_INVALID,
        ) from exc
    except ExportRangeNotFoundError as exc:
        raise APIError(
            str(exc),
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=APIErrorCode.EXPORT_RANGE_NOT_FOUND,
        ) from exc
    except ExportFailedError as exc:
        raise APIError(
            str(exc),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code=APIErrorCode.EXPORT_FAILED,
            extra={"returncode": exc.returncode},
        ) from exc

    return ExportResponse(
        filename=result.filename,
        path=str(result.path),
        is_internal=result.is_internal,
        mode=result.mode,
        offset_s=result.offset_s,
        duration_s=result.duration_s,
        segments=result.segments,
        download_url=f"/api/v1/exports/{result.filename}" if result.is_internal else None,
    )
