"""Inventory and export data models."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from homenvr.models.enums import ExportMode, RecordingStatus


class Recording(BaseModel):
    """Inventory record mirroring one segment file on disk."""

    id: int | None = None
    camera_id: str
    filename: str
    path: str
    start_time: datetime
    end_time: datetime
    size: int = Field(default=0, ge=0)
    status: RecordingStatus = RecordingStatus.COMPLETE

    @property
    def duration_s(self) -> float:
        return max(0.0, (self.end_time - self.start_time).total_seconds())

    def contains(self, instant: datetime) -> bool:
        """Return True if `instant` lies within [start_time, end_time]."""
        return self.start_time <= instant <= self.end_time


class ActiveRecording(BaseModel):
    """In-memory marker for a camera whose capture process is running.

    Never persisted. Created when a process is spawned and dropped as soon
    as the process exits or is stopped.
    """

    model_config = {"frozen": True}

    camera_id: str
    camera_name: str
    pid: int | None
    started_at: datetime
    generation: int


class ExportResult(BaseModel):
    """Outcome of a successful clip export."""

    path: Path
    filename: str
    is_internal: bool
    mode: ExportMode
    offset_s: float
    duration_s: float
    segments: list[str] = Field(default_factory=list)


class ExportEntry(BaseModel):
    """A file waiting in the export holding area."""

    filename: str
    size: int
    created_at: datetime


class RecordingGap(BaseModel):
    """A hole in the recorded timeline of one camera."""

    camera_id: str
    previous_filename: str
    next_filename: str
    gap_start: datetime
    gap_end: datetime

    @property
    def gap_s(self) -> float:
        return (self.gap_end - self.gap_start).total_seconds()
