"""Main application that wires all components together."""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from datetime import datetime
from pathlib import Path

from homenvr.api import APIServer, create_app
from homenvr.config import load_config, resolve_state_store_dsn
from homenvr.errors import (
    CameraNotFoundError,
    RecordingActiveError,
    RecordingNotFoundError,
    StorageFilesystemError,
)
from homenvr.export import ClipExporter, CommandRunner, SubprocessRunner
from homenvr.interfaces import CameraRegistry, DiskUsageProbe, SettingsStore
from homenvr.maintenance import MaintenanceReport, StorageMonitor, find_gaps
from homenvr.models.camera import Camera
from homenvr.models.config import Config
from homenvr.models.recording import ActiveRecording, ExportResult, Recording, RecordingGap
from homenvr.models.settings import Settings
from homenvr.recording import CaptureSupervisor, FfmpegSegmentRecorder, SegmentRecorder
from homenvr.registry import ConfigCameraRegistry
from homenvr.repository import RecordingRepository
from homenvr.state import SQLAlchemyInventoryStore
from homenvr.storage.disk import ShutilDiskUsageProbe
from homenvr.storage.files import ensure_dir, unlink_segment
from homenvr.storage.reconciler import StorageReconciler, SyncReport
from homenvr.storage.retention import RetentionPolicy, RetentionReport

logger = logging.getLogger(__name__)


class Application:
    """Owns every engine component and its lifecycle.

    `initialize()` builds components without spawning anything, which is
    what one-shot CLI commands use. `run()` additionally starts capture for
    enabled cameras, the storage monitor and the API server, then waits for
    SIGINT/SIGTERM.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        config: Config | None = None,
        recorder: SegmentRecorder | None = None,
        disk_probe: DiskUsageProbe | None = None,
        command_runner: CommandRunner | None = None,
    ) -> None:
        if config_path is None and config is None:
            raise ValueError("config_path or config is required")
        self._config_path = config_path
        self._config = config
        self._recorder_override = recorder
        self._disk_probe_override = disk_probe
        self._runner_override = command_runner

        self._store: SQLAlchemyInventoryStore | None = None
        self._settings_store: SettingsStore | None = None
        self._repository: RecordingRepository | None = None
        self._registry: CameraRegistry | None = None
        self._supervisor: CaptureSupervisor | None = None
        self._reconciler: StorageReconciler | None = None
        self._retention: RetentionPolicy | None = None
        self._exporter: ClipExporter | None = None
        self._monitor: StorageMonitor | None = None
        self._api_server: APIServer | None = None
        self._start_time: float | None = None
        self._running = False

        self._shutdown_event = asyncio.Event()
        self._shutdown_started = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """Run until a shutdown signal arrives."""
        logger.info("Starting HomeNVR...")
        try:
            await self.initialize()
            self._setup_signal_handlers()
            await self.start()
            logger.info("HomeNVR started. Recording...")
            await self._shutdown_event.wait()
        finally:
            await self.shutdown()

    async def initialize(self) -> None:
        """Load config and build components. Nothing is spawned yet."""
        if self._config is None:
            assert self._config_path is not None
            self._config = load_config(self._config_path)
            logger.info("Config loaded from %s", self._config_path)
        config = self._config

        await ensure_dir(config.storage.recordings_dir)
        await ensure_dir(config.storage.exports_dir)

        self._store = await self._create_store(config)
        self._settings_store = self._store.settings_store(self._default_settings(config))
        # Seeds defaults on first start.
        await self._settings_store.get_settings()
        self._repository = RecordingRepository(
            self._store,
            retry=config.retry,
            should_retry=self._store.dialect.is_retryable_error,
        )
        self._registry = ConfigCameraRegistry(config.cameras)
        self._reconciler = StorageReconciler(
            registry=self._registry,
            repository=self._repository,
            recordings_dir=config.storage.recordings_dir,
            config=config.reconciler,
        )
        self._supervisor = CaptureSupervisor(
            registry=self._registry,
            recorder=self._recorder_override or FfmpegSegmentRecorder(config.recorder),
            recordings_dir=config.storage.recordings_dir,
            config=config.recorder,
            on_process_exit=self._reconcile_after_exit,
        )
        self._retention = RetentionPolicy(
            repository=self._repository,
            settings=self._settings_store,
            probe=self._disk_probe_override or ShutilDiskUsageProbe(),
            recordings_dir=config.storage.recordings_dir,
            active=self._supervisor,
            segment_seconds=config.recorder.segment_seconds,
            max_deletions_per_run=config.retention.max_deletions_per_run,
        )
        self._exporter = ClipExporter(
            repository=self._repository,
            exports_dir=config.storage.exports_dir,
            config=config.export,
            runner=self._runner_override or SubprocessRunner(),
        )
        self._monitor = StorageMonitor(
            reconciler=self._reconciler,
            retention=self._retention,
            interval_s=config.monitor.interval_s,
        )

        if config.server.enabled:
            self._api_server = APIServer(
                app=create_app(self),
                host=config.server.host,
                port=config.server.port,
            )
        logger.info("All components created")

    async def start(self) -> None:
        """Start capture, periodic maintenance and the API server."""
        config = self.config
        self._start_time = time.time()
        self._running = True

        started = await self.supervisor.start_all()
        logger.info("Started %d capture process(es)", started)

        if config.monitor.enabled:
            await self.monitor.start()
        else:
            logger.warning("Storage monitor disabled; run `homenvr sync`/`cleanup` manually")

        if self._api_server is not None:
            await self._api_server.start()

    async def _create_store(self, config: Config) -> SQLAlchemyInventoryStore:
        dsn = resolve_state_store_dsn(config)
        store = SQLAlchemyInventoryStore(dsn)
        if not await store.initialize(create_schema=config.state_store.create_schema):
            raise RuntimeError("Inventory store unavailable; check state_store.dsn")
        return store

    @staticmethod
    def _default_settings(config: Config) -> Settings:
        return Settings(
            clean_threshold_percent=config.retention.clean_threshold_percent,
            target_threshold_percent=config.retention.target_threshold_percent,
            node_name=config.node_name,
            storage_cap_bytes=config.retention.storage_cap_bytes,
        )

    async def _reconcile_after_exit(self, camera_id: str) -> SyncReport:
        logger.info("Capture process exited, reconciling", extra={"camera_name": camera_id})
        return await self.reconciler.sync()

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        if self._shutdown_started:
            logger.warning("Shutdown already in progress, ignoring signal")
            return
        logger.info("Received signal %s, initiating shutdown...", sig.name)
        self.request_shutdown()

    def request_shutdown(self) -> None:
        self._shutdown_started = True
        self._shutdown_event.set()

    async def shutdown(self) -> None:
        """Graceful shutdown of all components."""
        logger.info("Shutting down HomeNVR...")
        self._running = False

        # API first so no new requests arrive during shutdown.
        if self._api_server is not None:
            await self._api_server.stop()
        if self._monitor is not None:
            await self._monitor.shutdown()
        if self._supervisor is not None:
            await self._supervisor.shutdown()
        if self._store is not None:
            await self._store.shutdown()

        logger.info("Shutdown complete")

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def _require_camera(self, camera_id: str) -> Camera:
        camera = await self.registry.get_camera(camera_id)
        if camera is None:
            raise CameraNotFoundError(camera_id)
        return camera

    async def start_camera(self, camera_id: str) -> ActiveRecording | None:
        return await self.supervisor.start_recording(await self._require_camera(camera_id))

    async def stop_camera(self, camera_id: str) -> bool:
        await self._require_camera(camera_id)
        return self.supervisor.stop_recording(camera_id)

    async def set_camera_enabled(self, camera_id: str, enabled: bool) -> Camera:
        """Toggle a camera and start or stop its capture to match."""
        camera = await self.registry.set_enabled(camera_id, enabled)
        if camera is None:
            raise CameraNotFoundError(camera_id)
        if enabled:
            await self.supervisor.start_recording(camera)
        else:
            self.supervisor.stop_recording(camera_id)
        return camera

    async def sync_recordings(self) -> SyncReport:
        return await self.reconciler.sync()

    async def cleanup(self) -> RetentionReport:
        """Run a retention check under the pass lock."""
        async with self.reconciler.exclusive():
            return await self.retention.check_and_cleanup()

    async def run_maintenance(self) -> MaintenanceReport:
        """One sync pass followed by a retention check."""
        return await self.monitor.run_once()

    async def delete_recording(self, recording_id: int) -> Recording:
        """Delete one recording's file and inventory record.

        Raises:
            RecordingNotFoundError: no record has this id
            RecordingActiveError: a capture process is still writing the file
        """
        async with self.reconciler.exclusive():
            record = await self.repository.get(recording_id)
            if record is None:
                raise RecordingNotFoundError(recording_id)
            if record.path in await self.retention.protected_paths():
                raise RecordingActiveError(recording_id, record.path)
            await unlink_segment(record.path)
            await self.repository.delete(recording_id)
        logger.info(
            "Deleted recording",
            extra={"camera_name": record.camera_id, "recording_id": record.filename},
        )
        return record

    async def purge_recordings(self) -> int:
        """Delete every segment file and inventory record.

        Segments still being written are left on disk; the next pass
        re-creates their records. Returns how many records were removed.
        """
        async with self.reconciler.exclusive():
            protected = await self.retention.protected_paths()
            records = await self.repository.list_recordings()
            removed_files = 0
            for record in records:
                if record.path in protected:
                    continue
                try:
                    if await unlink_segment(record.path):
                        removed_files += 1
                except StorageFilesystemError as exc:
                    logger.error(
                        "Failed to delete segment during purge: %s",
                        exc,
                        extra={"camera_name": record.camera_id, "recording_id": record.filename},
                    )
            deleted = await self.repository.delete_all()
        logger.warning(
            "Purged %d recording(s), %d file(s) removed, %d active segment(s) kept",
            deleted,
            removed_files,
            len(protected),
        )
        return deleted

    async def export(
        self,
        camera_id: str,
        start: datetime,
        end: datetime,
        destination: str | Path | None = None,
    ) -> ExportResult:
        await self._require_camera(camera_id)
        return await self.exporter.export(camera_id, start, end, destination)

    async def find_gaps(
        self, camera_id: str | None = None, min_gap_s: float = 1.0
    ) -> list[RecordingGap]:
        records = await self.repository.list_all_ordered(camera_id)
        return find_gaps(records, min_gap_s=min_gap_s)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def config(self) -> Config:
        if self._config is None:
            raise RuntimeError("Config not loaded")
        return self._config

    @property
    def store(self) -> SQLAlchemyInventoryStore:
        if self._store is None:
            raise RuntimeError("Inventory store not initialized")
        return self._store

    @property
    def settings_store(self) -> SettingsStore:
        if self._settings_store is None:
            raise RuntimeError("Settings store not initialized")
        return self._settings_store

    @property
    def repository(self) -> RecordingRepository:
        if self._repository is None:
            raise RuntimeError("Repository not initialized")
        return self._repository

    @property
    def registry(self) -> CameraRegistry:
        if self._registry is None:
            raise RuntimeError("Camera registry not initialized")
        return self._registry

    @property
    def supervisor(self) -> CaptureSupervisor:
        if self._supervisor is None:
            raise RuntimeError("Capture supervisor not initialized")
        return self._supervisor

    @property
    def reconciler(self) -> StorageReconciler:
        if self._reconciler is None:
            raise RuntimeError("Reconciler not initialized")
        return self._reconciler

    @property
    def retention(self) -> RetentionPolicy:
        if self._retention is None:
            raise RuntimeError("Retention policy not initialized")
        return self._retention

    @property
    def exporter(self) -> ClipExporter:
        if self._exporter is None:
            raise RuntimeError("Exporter not initialized")
        return self._exporter

    @property
    def monitor(self) -> StorageMonitor:
        if self._monitor is None:
            raise RuntimeError("Storage monitor not initialized")
        return self._monitor

    @property
    def is_running(self) -> bool:
        return self._running and not self._shutdown_event.is_set()

    @property
    def uptime_seconds(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.time() - self._start_time
