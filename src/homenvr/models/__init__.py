"""Data models for the recording engine."""

from homenvr.models.camera import Camera
from homenvr.models.config import (
    Config,
    ExportConfig,
    MonitorConfig,
    ReconcilerConfig,
    RecorderConfig,
    RetentionConfig,
    RetryConfig,
    ServerConfig,
    StateStoreConfig,
    StoragePathsConfig,
)
from homenvr.models.enums import ExportMode, ProcessEventKind, RecordingStatus, RestartPolicy
from homenvr.models.events import (
    CaptureProcessEvent,
    ProcessEvent,
    ProcessExited,
    ProcessKilled,
    ProcessSpawnFailed,
)
from homenvr.models.recording import (
    ActiveRecording,
    ExportEntry,
    ExportResult,
    Recording,
    RecordingGap,
)
from homenvr.models.settings import Settings, SettingsUpdate

__all__ = [
    "ActiveRecording",
    "Camera",
    "CaptureProcessEvent",
    "Config",
    "ExportConfig",
    "ExportEntry",
    "ExportMode",
    "ExportResult",
    "MonitorConfig",
    "ProcessEvent",
    "ProcessEventKind",
    "ProcessExited",
    "ProcessKilled",
    "ProcessSpawnFailed",
    "ReconcilerConfig",
    "RecorderConfig",
    "Recording",
    "RecordingGap",
    "RecordingStatus",
    "RestartPolicy",
    "RetentionConfig",
    "RetryConfig",
    "ServerConfig",
    "Settings",
    "SettingsUpdate",
    "StateStoreConfig",
    "StoragePathsConfig",
]
