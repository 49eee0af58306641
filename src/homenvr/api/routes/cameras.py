"""Camera listing and recording control endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from homenvr.api.dependencies import get_nvr_app
from homenvr.api.errors import APIError, APIErrorCode
from homenvr.errors import CameraNotFoundError
from homenvr.models.camera import Camera
from homenvr.models.recording import ActiveRecording

if TYPE_CHECKING:
    from homenvr.app import Application

router = APIRouter(tags=["cameras"])


class ActiveRecordingResponse(BaseModel):
    pid: int | None
    started_at: datetime
    generation: int


class CameraResponse(BaseModel):
    id: str
    name: str
    enabled: bool
    recording: bool
    restart_pending: bool
    active: ActiveRecordingResponse | None = None


class CameraActionResponse(BaseModel):
    camera: CameraResponse
    changed: bool


def _camera_response(app: Application, camera: Camera) -> CameraResponse:
    marker = app.supervisor.get_active_info(camera.id)
    return CameraResponse(
        id=camera.id,
        name=camera.name,
        enabled=camera.enabled,
        recording=marker is not None,
        restart_pending=app.supervisor.is_restart_pending(camera.id),
        active=_active_response(marker),
    )


def _active_response(marker: ActiveRecording | None) -> ActiveRecordingResponse | None:
    if marker is None:
        return None
    return ActiveRecordingResponse(
        pid=marker.pid, started_at=marker.started_at, generation=marker.generation
    )


def _not_found(exc: CameraNotFoundError) -> APIError:
    return APIError(
        str(exc),
        status_code=status.HTTP_404_NOT_FOUND,
        error_code=APIErrorCode.CAMERA_NOT_FOUND,
    )


async def _require_camera(app: Application, camera_id: str) -> Camera:
    camera = await app.registry.get_camera(camera_id)
    if camera is None:
        raise _not_found(CameraNotFoundError(camera_id))
    return camera


@router.get("/api/v1/cameras", response_model=list[CameraResponse])
async def list_cameras(app: Application = Depends(get_nvr_app)) -> list[CameraResponse]:
    """List all cameras with their active-recording state."""
    cameras = await app.registry.list_cameras()
    return [_camera_response(app, camera) for camera in cameras]


@router.get("/api/v1/cameras/{camera_id}", response_model=CameraResponse)
async def get_camera(camera_id: str, app: Application = Depends(get_nvr_app)) -> CameraResponse:
    return _camera_response(app, await _require_camera(app, camera_id))


@router.post("/api/v1/cameras/{camera_id}/start", response_model=CameraActionResponse)
async def start_camera(
    camera_id: str, app: Application = Depends(get_nvr_app)
) -> CameraActionResponse:
    """Start recording. A camera that is already recording is left alone."""
    was_recording = app.supervisor.get_active_info(camera_id) is not None
    try:
        marker = await app.start_camera(camera_id)
    except CameraNotFoundError as exc:
        raise _not_found(exc) from exc
    if marker is None:
        raise APIError(
            "Capture process could not be started",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=APIErrorCode.CAPTURE_START_FAILED,
        )
    camera = await _require_camera(app, camera_id)
    return CameraActionResponse(
        camera=_camera_response(app, camera), changed=not was_recording
    )


@router.post("/api/v1/cameras/{camera_id}/stop", response_model=CameraActionResponse)
async def stop_camera(
    camera_id: str, app: Application = Depends(get_nvr_app)
) -> CameraActionResponse:
    try:
        stopped = await app.stop_camera(camera_id)
    except CameraNotFoundError as exc:
        raise _not_found(exc) from exc
    camera = await _require_camera(app, camera_id)
    return CameraActionResponse(camera=_camera_response(app, camera), changed=stopped)


@router.post("/api/v1/cameras/{camera_id}/enable", response_model=CameraActionResponse)
async def enable_camera(
    camera_id: str, app: Application = Depends(get_nvr_app)
) -> CameraActionResponse:
    """Enable a camera and start recording it."""
    return await _set_enabled(app, camera_id, True)


@router.post("/api/v1/cameras/{camera_id}/disable", response_model=CameraActionResponse)
async def disable_camera(
    camera_id: str, app: Application = Depends(get_nvr_app)
) -> CameraActionResponse:
    """Disable a camera and stop recording it. Pending restarts are dropped."""
    return await _set_enabled(app, camera_id, False)


async def _set_enabled(app: Application, camera_id: str, enabled: bool) -> CameraActionResponse:
    before = await _require_camera(app, camera_id)
    try:
        camera = await app.set_camera_enabled(camera_id, enabled)
    except CameraNotFoundError as exc:
        raise _not_found(exc) from exc
    return CameraActionResponse(
        camera=_camera_response(app, camera), changed=before.enabled != enabled
    )
