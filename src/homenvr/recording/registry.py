"""Bookkeeping for running capture processes."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from dataclasses import dataclass, field

from homenvr.models.recording import ActiveRecording
from homenvr.recording.recorder import CaptureProcess


@dataclass(slots=True)
class TrackedProcess:
    """Supervisor-owned handle for one capture process generation."""

    marker: ActiveRecording
    process: CaptureProcess = field(repr=False)
    started_monotonic: float
    watch_task: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def camera_id(self) -> str:
        return self.marker.camera_id

    @property
    def generation(self) -> int:
        return self.marker.generation


class RecordingRegistry:
    """Map of camera id to its single tracked capture process."""

    def __init__(self) -> None:
        self._entries: dict[str, TrackedProcess] = {}

    def add(self, tracked: TrackedProcess) -> None:
        if tracked.camera_id in self._entries:
            raise ValueError(f"camera {tracked.camera_id} already has a tracked process")
        self._entries[tracked.camera_id] = tracked

    def get(self, camera_id: str) -> TrackedProcess | None:
        return self._entries.get(camera_id)

    def pop(self, camera_id: str) -> TrackedProcess | None:
        return self._entries.pop(camera_id, None)

    def marker(self, camera_id: str) -> ActiveRecording | None:
        tracked = self._entries.get(camera_id)
        return tracked.marker if tracked is not None else None

    def markers(self) -> list[ActiveRecording]:
        return [tracked.marker for tracked in self._entries.values()]

    def camera_ids(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, camera_id: object) -> bool:
        return camera_id in self._entries

    def __iter__(self) -> Iterator[TrackedProcess]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)
