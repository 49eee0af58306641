"""Configuration models."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from homenvr.models.camera import Camera
from homenvr.models.enums import RestartPolicy


class StoragePathsConfig(BaseModel):
    """Where segments and exported clips live on disk."""

    recordings_dir: Path = Path("./recordings")
    exports_dir: Path = Path("./exports")

    @model_validator(mode="after")
    def _validate_distinct(self) -> StoragePathsConfig:
        if self.recordings_dir.resolve() == self.exports_dir.resolve():
            raise ValueError("storage.exports_dir must differ from storage.recordings_dir")
        return self


class StateStoreConfig(BaseModel):
    """State store configuration."""

    dsn_env: str | None = None
    dsn: str | None = None
    # Create tables on startup. Disable when alembic manages the schema.
    create_schema: bool = True

    @model_validator(mode="after")
    def _validate_backend(self) -> StateStoreConfig:
        if not (self.dsn_env or self.dsn):
            raise ValueError("state_store.dsn_env or state_store.dsn required")
        return self


class RecorderConfig(BaseModel):
    """Capture process settings shared by all cameras."""

    ffmpeg_path: str = "ffmpeg"
    segment_seconds: int = Field(default=300, ge=1)
    restart_delay_s: float = Field(default=5.0, ge=0.0)
    restart_policy: RestartPolicy = RestartPolicy.FIXED
    max_restart_delay_s: float = Field(default=60.0, ge=0.0)
    stable_after_s: float = Field(default=120.0, ge=0.0)
    stop_timeout_s: float = Field(default=10.0, gt=0.0)
    # Placeholders: {camera_id}, {name}, {safe_name}. When unset the camera
    # address is used directly.
    input_url_template: str | None = None
    rtsp_transport: str = "tcp"
    ffmpeg_flags: list[str] = Field(default_factory=list)
    stderr_log_dir: Path | None = None

    @field_validator("restart_policy", mode="before")
    @classmethod
    def _normalize_policy(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.lower()
        return value

    @model_validator(mode="after")
    def _validate_delays(self) -> RecorderConfig:
        if self.max_restart_delay_s < self.restart_delay_s:
            raise ValueError("recorder.max_restart_delay_s must be >= recorder.restart_delay_s")
        return self


class ReconcilerConfig(BaseModel):
    """Filesystem walk limits for the storage reconciler."""

    max_pending_dirs: int = Field(default=4096, ge=1)


class MonitorConfig(BaseModel):
    """Periodic sync + retention schedule."""

    enabled: bool = True
    interval_s: float = Field(default=10.0, gt=0.0)


class RetentionConfig(BaseModel):
    """Retention defaults seeded into the settings store on first start."""

    clean_threshold_percent: int = Field(default=80, gt=0, le=100)
    target_threshold_percent: int = Field(default=70, gt=0, le=100)
    storage_cap_bytes: int | None = Field(default=None, gt=0)
    max_deletions_per_run: int = Field(default=50, ge=1)

    @model_validator(mode="after")
    def _validate_thresholds(self) -> RetentionConfig:
        if self.target_threshold_percent > self.clean_threshold_percent:
            raise ValueError(
                "retention.target_threshold_percent must be <= retention.clean_threshold_percent"
            )
        return self


class ExportConfig(BaseModel):
    """Clip exporter settings."""

    ffmpeg_path: str = "ffmpeg"
    holding_ttl_s: float = Field(default=3 * 60 * 60, gt=0.0)
    match_tolerance_s: float = Field(default=10.0, ge=0.0)
    reencode_video_codec: str = "libx264"
    reencode_audio_codec: str = "aac"
    reencode_preset: str = "veryfast"
    timeout_s: float | None = Field(default=None, gt=0.0)


class ServerConfig(BaseModel):
    """HTTP API server configuration."""

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class RetryConfig(BaseModel):
    """Retry configuration for transient failures."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_s: float = Field(default=1.0, ge=0.0)


class Config(BaseModel):
    """Main configuration."""

    version: int = 1
    node_name: str = "homenvr"
    cameras: list[Camera] = Field(default_factory=list)
    storage: StoragePathsConfig = Field(default_factory=StoragePathsConfig)
    state_store: StateStoreConfig
    recorder: RecorderConfig = Field(default_factory=RecorderConfig)
    reconciler: ReconcilerConfig = Field(default_factory=ReconcilerConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @model_validator(mode="after")
    def _validate_unique_cameras(self) -> Config:
        seen: set[str] = set()
        duplicates: list[str] = []
        for camera in self.cameras:
            if camera.id in seen:
                duplicates.append(camera.id)
            seen.add(camera.id)
        if duplicates:
            raise ValueError(f"Duplicate camera ids: {', '.join(sorted(set(duplicates)))}")
        return self
