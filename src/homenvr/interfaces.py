"""Interface definitions for HomeNVR engine collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from homenvr.models.camera import Camera
    from homenvr.models.recording import ActiveRecording, Recording
    from homenvr.models.settings import Settings, SettingsUpdate
    from homenvr.storage.disk import DiskUsage


class Shutdownable(ABC):
    """Async shutdown interface for managed components."""

    @abstractmethod
    async def shutdown(self, timeout: float | None = None) -> None:
        """Release resources and stop background work."""
        raise NotImplementedError


class CameraRegistry(ABC):
    """Source of camera definitions. The engine only reads it, except for
    the enabled flag which operators may toggle through the API."""

    @abstractmethod
    async def list_cameras(self) -> list[Camera]:
        """Return every known camera, enabled or not."""
        raise NotImplementedError

    @abstractmethod
    async def get_camera(self, camera_id: str) -> Camera | None:
        """Return the current definition of a camera, or None if unknown."""
        raise NotImplementedError

    @abstractmethod
    async def set_enabled(self, camera_id: str, enabled: bool) -> Camera | None:
        """Toggle the enabled flag. Returns the updated camera or None if unknown."""
        raise NotImplementedError


class SettingsStore(ABC):
    """Hot-reloadable node settings (retention thresholds, node identity)."""

    @abstractmethod
    async def get_settings(self) -> Settings:
        """Return current settings, creating defaults on first read."""
        raise NotImplementedError

    @abstractmethod
    async def update_settings(self, update: SettingsUpdate) -> Settings:
        """Apply a partial update and return the stored result."""
        raise NotImplementedError


class ActiveRecordingSource(Protocol):
    """Anything that can list the currently running capture processes."""

    def active_recordings(self) -> list[ActiveRecording]: ...


class DiskUsageProbe(ABC):
    """Reports usage of the volume that holds the recordings."""

    @abstractmethod
    async def usage(self, path: Path) -> DiskUsage:
        raise NotImplementedError


class InventoryStore(Shutdownable, ABC):
    """Persisted inventory of segment files.

    Implementations raise on database errors; the repository layer retries.
    """

    @abstractmethod
    async def get_recording(self, recording_id: int) -> Recording | None:
        raise NotImplementedError

    @abstractmethod
    async def get_by_path(self, path: str) -> Recording | None:
        raise NotImplementedError

    @abstractmethod
    async def records_by_path(self, camera_id: str) -> dict[str, Recording]:
        """All records of one camera keyed by absolute path."""
        raise NotImplementedError

    @abstractmethod
    async def insert_recording(self, recording: Recording) -> bool:
        """Insert a record. Returns False if the path is already known."""
        raise NotImplementedError

    @abstractmethod
    async def update_progress(self, recording_id: int, size: int, end_time: datetime) -> None:
        raise NotImplementedError

    @abstractmethod
    async def oldest_recording(self, exclude_paths: Iterable[str] = ()) -> Recording | None:
        raise NotImplementedError

    @abstractmethod
    async def latest_recording(self, camera_id: str) -> Recording | None:
        raise NotImplementedError

    @abstractmethod
    async def list_overlapping(
        self, camera_id: str, start: datetime, end: datetime
    ) -> list[Recording]:
        """Records of `camera_id` intersecting [start, end], oldest first."""
        raise NotImplementedError

    @abstractmethod
    async def list_recordings(
        self,
        *,
        camera_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        newest_first: bool = True,
    ) -> list[Recording]:
        raise NotImplementedError

    @abstractmethod
    async def list_start_times(self) -> list[datetime]:
        raise NotImplementedError

    @abstractmethod
    async def delete_recording(self, recording_id: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def delete_all(self) -> int:
        raise NotImplementedError

    @abstractmethod
    async def total_size(self) -> int:
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> bool:
        raise NotImplementedError
