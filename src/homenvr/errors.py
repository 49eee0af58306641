"""Error hierarchy for HomeNVR engine operations."""

from __future__ import annotations

from datetime import datetime


class NVRError(Exception):
    """Base exception for all engine errors.

    Compatible with error-as-value pattern: instances can be returned as values
    instead of raised. Preserves stack traces via exception chaining.
    """

    def __init__(self, message: str, stage: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.cause = cause
        self.__cause__ = cause  # Python's exception chaining


class ProcessSpawnError(NVRError):
    """An external tool (capture or transcode) could not be started."""

    def __init__(self, program: str, cause: Exception | None = None) -> None:
        super().__init__(f"Failed to start {program}", stage="spawn", cause=cause)
        self.program = program


class StorageFilesystemError(NVRError):
    """A filesystem operation on the recordings volume failed."""

    def __init__(self, path: str, operation: str, cause: Exception | None = None) -> None:
        super().__init__(
            f"Filesystem {operation} failed for {path}", stage="filesystem", cause=cause
        )
        self.path = path
        self.operation = operation


class SegmentParseError(NVRError):
    """A segment path does not follow the naming convention."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Unrecognized segment name: {path}", stage="reconcile")
        self.path = path


class RetentionExhaustedError(NVRError):
    """Usage is above the ceiling but nothing is left to evict."""

    def __init__(self, usage_percent: float, ceiling_percent: float) -> None:
        super().__init__(
            f"Disk usage {usage_percent:.1f}% exceeds {ceiling_percent:.1f}% "
            "but no eligible recordings remain",
            stage="retention",
        )
        self.usage_percent = usage_percent
        self.ceiling_percent = ceiling_percent


class ExportError(NVRError):
    """Base class for clip export failures."""

    def __init__(self, message: str, camera_id: str, cause: Exception | None = None) -> None:
        super().__init__(message, stage="export", cause=cause)
        self.camera_id = camera_id


class ExportRangeInvalidError(ExportError):
    """Requested export range is empty or reversed."""

    def __init__(self, camera_id: str, start: datetime, end: datetime) -> None:
        super().__init__(
            f"Export range is invalid: {start.isoformat()} - {end.isoformat()}",
            camera_id=camera_id,
        )
        self.start = start
        self.end = end


class ExportRangeNotFoundError(ExportError):
    """No recording covers the requested export start."""

    def __init__(self, camera_id: str, start: datetime) -> None:
        super().__init__(
            f"No recording for camera {camera_id} covers {start.isoformat()}",
            camera_id=camera_id,
        )
        self.start = start


class ExportFailedError(ExportError):
    """The transcoding tool could not produce the clip."""

    def __init__(self, camera_id: str, returncode: int | None, stderr_tail: str = "") -> None:
        super().__init__(
            f"Export failed for camera {camera_id} (exit code: {returncode})",
            camera_id=camera_id,
        )
        self.returncode = returncode
        self.stderr_tail = stderr_tail


class CameraNotFoundError(NVRError):
    """The camera id is not known to the camera registry."""

    def __init__(self, camera_id: str) -> None:
        super().__init__(f"Camera not found: {camera_id}", stage="registry")
        self.camera_id = camera_id


class RecordingNotFoundError(NVRError):
    """No inventory record has the requested id."""

    def __init__(self, recording_id: int) -> None:
        super().__init__(f"Recording not found: {recording_id}", stage="inventory")
        self.recording_id = recording_id


class RecordingActiveError(NVRError):
    """The recording's file is still being written by a capture process."""

    def __init__(self, recording_id: int, path: str) -> None:
        super().__init__(
            f"Recording {recording_id} is still being written: {path}", stage="inventory"
        )
        self.recording_id = recording_id
        self.path = path
