"""Centralized enums for type safety and IDE support."""

from enum import StrEnum


class RecordingStatus(StrEnum):
    """Inventory status of a recorded segment."""

    COMPLETE = "complete"


class RestartPolicy(StrEnum):
    """How the capture supervisor spaces out restarts of an exited process."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class ExportMode(StrEnum):
    """Transcoding mode used to cut a clip."""

    COPY = "copy"
    REENCODE = "reencode"


class ProcessEventKind(StrEnum):
    """Capture process lifecycle event kinds."""

    EXITED = "exited"
    KILLED = "killed"
    SPAWN_FAILED = "spawn_failed"
