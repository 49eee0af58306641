"""Capture supervisor: one capture process per enabled camera.

Process exits are delivered as typed events onto a single control-loop
queue. The control loop drops bookkeeping for the exited process, asks for
an out-of-band reconciliation pass, and schedules a restart when the camera
is still wanted and enabled.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path

from homenvr.errors import NVRError
from homenvr.interfaces import CameraRegistry, Shutdownable
from homenvr.models.camera import Camera
from homenvr.models.config import RecorderConfig
from homenvr.models.enums import RestartPolicy
from homenvr.models.events import (
    ProcessEvent,
    ProcessExited,
    ProcessKilled,
    ProcessSpawnFailed,
)
from homenvr.models.recording import ActiveRecording
from homenvr.naming import camera_dir, date_dir, segment_output_template
from homenvr.recording.recorder import CaptureProcess, SegmentRecorder, kill, terminate
from homenvr.recording.registry import RecordingRegistry, TrackedProcess
from homenvr.storage.files import ensure_dir

logger = logging.getLogger(__name__)

ReconcileTrigger = Callable[[str], Awaitable[object]]


class CaptureSupervisor(Shutdownable):
    def __init__(
        self,
        *,
        registry: CameraRegistry,
        recorder: SegmentRecorder,
        recordings_dir: Path,
        config: RecorderConfig | None = None,
        on_process_exit: ReconcileTrigger | None = None,
    ) -> None:
        self._cameras = registry
        self._recorder = recorder
        self._recordings_dir = recordings_dir
        self._config = config or RecorderConfig()
        self._on_process_exit = on_process_exit

        self._active = RecordingRegistry()
        self._starting: set[str] = set()
        self._cancelled_starts: set[str] = set()
        self._wanted: set[str] = set()
        self._stopped: dict[int, TrackedProcess] = {}
        self._restart_tasks: dict[str, asyncio.Task[None]] = {}
        self._consecutive_failures: dict[str, int] = {}
        self._background: set[asyncio.Task[object]] = set()
        self._generations = itertools.count(1)

        self._events: asyncio.Queue[ProcessEvent] = asyncio.Queue()
        self._control_task: asyncio.Task[None] | None = None
        self._shutting_down = False

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the control loop. Must be called from the running event loop."""
        if self._control_task is None or self._control_task.done():
            self._shutting_down = False
            self._control_task = asyncio.create_task(
                self._control_loop(), name="capture-supervisor"
            )

    async def start_all(self) -> int:
        """Start every enabled camera. Returns how many processes were started."""
        self.start()
        started = 0
        for camera in await self._cameras.list_cameras():
            if not camera.enabled:
                logger.info("Camera disabled, not recording", extra={"camera_name": camera.name})
                continue
            if await self.start_recording(camera) is not None:
                started += 1
        return started

    async def start_recording(self, camera: Camera) -> ActiveRecording | None:
        """Spawn the capture process for `camera` if none is tracked.

        Idempotent: a second call while a process is tracked (or being
        spawned) returns the existing marker without side effects.
        """
        if self._shutting_down:
            logger.warning("Supervisor shutting down, ignoring start", extra={"camera_name": camera.name})
            return None
        existing = self._active.marker(camera.id)
        if existing is not None or camera.id in self._starting:
            if camera.id in self._starting:
                # A stop issued during the spawn no longer applies.
                self._cancelled_starts.discard(camera.id)
                self._wanted.add(camera.id)
            logger.info("Already recording, start is a no-op", extra={"camera_name": camera.name})
            return existing

        self.start()
        self._wanted.add(camera.id)
        self._cancel_restart(camera.id)
        self._starting.add(camera.id)
        generation = next(self._generations)
        try:
            try:
                await ensure_dir(camera_dir(self._recordings_dir, camera))
                await ensure_dir(date_dir(self._recordings_dir, camera, datetime.now()))
                process = await self._recorder.spawn(
                    camera, segment_output_template(self._recordings_dir, camera)
                )
            except NVRError as exc:
                logger.error(
                    "Failed to start capture process: %s",
                    exc,
                    exc_info=exc,
                    extra={"camera_name": camera.name},
                )
                self._events.put_nowait(
                    ProcessSpawnFailed(
                        camera_id=camera.id,
                        generation=generation,
                        timestamp=datetime.now(UTC),
                        reason=str(exc),
                    )
                )
                return None

            marker = ActiveRecording(
                camera_id=camera.id,
                camera_name=camera.name,
                pid=process.pid,
                started_at=datetime.now(UTC),
                generation=generation,
            )
            tracked = TrackedProcess(
                marker=marker,
                process=process,
                started_monotonic=asyncio.get_running_loop().time(),
            )
            tracked.watch_task = asyncio.create_task(
                self._watch(camera.id, generation, process),
                name=f"capture-watch-{camera.id}-{generation}",
            )
            if camera.id in self._cancelled_starts or self._shutting_down:
                self._stopped[generation] = tracked
                terminate(process)
                logger.info(
                    "Stopped while starting, terminated new process (PID: %s)",
                    process.pid,
                    extra={"camera_name": camera.name},
                )
                return None
            self._active.add(tracked)
            logger.info(
                "Recording started (PID: %s, generation: %d)",
                process.pid,
                generation,
                extra={"camera_name": camera.name},
            )
            return marker
        finally:
            self._starting.discard(camera.id)
            self._cancelled_starts.discard(camera.id)

    def stop_recording(self, camera_id: str) -> bool:
        """SIGTERM the camera's process and drop its bookkeeping immediately.

        A spawn still in flight is terminated as soon as it returns. Returns
        False if nothing was tracked or starting. Pending restarts are
        cancelled either way.
        """
        self._wanted.discard(camera_id)
        self._cancel_restart(camera_id)
        tracked = self._active.pop(camera_id)
        if tracked is None:
            if camera_id not in self._starting:
                return False
            self._cancelled_starts.add(camera_id)
            logger.info("Stop requested while starting", extra={"camera_name": camera_id})
            return True
        self._stopped[tracked.generation] = tracked
        terminate(tracked.process)
        logger.info(
            "Recording stopped (PID: %s)",
            tracked.marker.pid,
            extra={"camera_name": tracked.marker.camera_name},
        )
        return True

    def get_active_info(self, camera_id: str) -> ActiveRecording | None:
        return self._active.marker(camera_id)

    def active_recordings(self) -> list[ActiveRecording]:
        return self._active.markers()

    def is_restart_pending(self, camera_id: str) -> bool:
        task = self._restart_tasks.get(camera_id)
        return task is not None and not task.done()

    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop every process, escalating to SIGKILL after the timeout."""
        timeout = self._config.stop_timeout_s if timeout is None else timeout
        self._shutting_down = True
        for camera_id in self._active.camera_ids():
            self.stop_recording(camera_id)
        for camera_id in list(self._restart_tasks):
            self._cancel_restart(camera_id)

        pending = [t for t in self._stopped.values() if t.watch_task is not None]
        watchers = [t.watch_task for t in pending if t.watch_task is not None]
        if watchers:
            _done, not_done = await asyncio.wait(watchers, timeout=timeout)
            for tracked in pending:
                if tracked.watch_task in not_done:
                    logger.warning(
                        "Capture process did not exit after SIGTERM, killing (PID: %s)",
                        tracked.marker.pid,
                        extra={"camera_name": tracked.marker.camera_name},
                    )
                    kill(tracked.process)
            if not_done:
                await asyncio.wait(not_done, timeout=timeout)

        tasks: list[asyncio.Task[object]] = [*self._background]
        for tracked in self._stopped.values():
            if tracked.watch_task is not None:
                tasks.append(tracked.watch_task)
        if self._control_task is not None:
            tasks.append(self._control_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._control_task = None
        self._stopped.clear()
        self._background.clear()
        logger.info("Capture supervisor stopped")

    # -------------------------------------------------------------------------
    # Control loop
    # -------------------------------------------------------------------------

    async def _watch(self, camera_id: str, generation: int, process: CaptureProcess) -> None:
        returncode = await process.wait()
        now = datetime.now(UTC)
        event: ProcessEvent
        if returncode < 0:
            event = ProcessKilled(
                camera_id=camera_id, generation=generation, timestamp=now, signal=-returncode
            )
        else:
            event = ProcessExited(
                camera_id=camera_id, generation=generation, timestamp=now, code=returncode
            )
        self._events.put_nowait(event)

    async def _control_loop(self) -> None:
        while True:
            event = await self._events.get()
            try:
                await self._handle_event(event)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Failed handling capture event %s: %s", event, exc, exc_info=True)

    async def _handle_event(self, event: ProcessEvent) -> None:
        camera_id = event.camera_id
        tracked = self._active.get(camera_id)
        stopped = self._stopped.pop(event.generation, None)
        uptime_s = 0.0

        if isinstance(event, ProcessSpawnFailed):
            current = tracked is None and camera_id not in self._starting
        elif tracked is not None and tracked.generation == event.generation:
            self._active.pop(camera_id)
            uptime_s = asyncio.get_running_loop().time() - tracked.started_monotonic
            current = True
        else:
            current = False

        known = tracked or stopped
        log_extra = {"camera_name": known.marker.camera_name if known is not None else camera_id}
        match event:
            case ProcessExited(code=code):
                logger.warning(
                    "Capture process exited (code: %s, generation: %d)",
                    code,
                    event.generation,
                    extra=log_extra,
                )
            case ProcessKilled(signal=sig):
                logger.warning(
                    "Capture process killed (signal: %s, generation: %d)",
                    sig,
                    event.generation,
                    extra=log_extra,
                )
            case ProcessSpawnFailed(reason=reason):
                logger.warning("Capture process failed to spawn: %s", reason, extra=log_extra)

        if not isinstance(event, ProcessSpawnFailed):
            self._trigger_reconcile(camera_id)

        if not current:
            # Explicitly stopped or superseded generation.
            return
        if self._shutting_down or camera_id not in self._wanted:
            return

        camera = await self._cameras.get_camera(camera_id)
        if camera is None or not camera.enabled:
            self._wanted.discard(camera_id)
            logger.info("Camera no longer enabled, not restarting", extra=log_extra)
            return

        delay = self._next_restart_delay(camera_id, uptime_s)
        logger.info("Restarting capture in %.1fs", delay, extra=log_extra)
        self._restart_tasks[camera_id] = asyncio.create_task(
            self._restart_after(camera_id, delay),
            name=f"capture-restart-{camera_id}",
        )

    async def _restart_after(self, camera_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        self._restart_tasks.pop(camera_id, None)
        if self._shutting_down or camera_id not in self._wanted:
            return
        camera = await self._cameras.get_camera(camera_id)
        if camera is None or not camera.enabled:
            self._wanted.discard(camera_id)
            logger.info(
                "Camera disabled before restart, giving up",
                extra={"camera_name": camera.name if camera else camera_id},
            )
            return
        await self.start_recording(camera)

    def _next_restart_delay(self, camera_id: str, uptime_s: float) -> float:
        base = self._config.restart_delay_s
        if self._config.restart_policy == RestartPolicy.FIXED:
            return base
        failures = self._consecutive_failures.get(camera_id, 0)
        if uptime_s >= self._config.stable_after_s:
            failures = 0
        delay = min(base * (2**failures), self._config.max_restart_delay_s)
        self._consecutive_failures[camera_id] = failures + 1
        return delay

    def _cancel_restart(self, camera_id: str) -> None:
        task = self._restart_tasks.pop(camera_id, None)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _trigger_reconcile(self, camera_id: str) -> None:
        if self._on_process_exit is None or self._shutting_down:
            return
        task = asyncio.create_task(
            self._on_process_exit(camera_id), name=f"reconcile-after-exit-{camera_id}"
        )
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task[object]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Reconciliation after process exit failed: %s", exc, exc_info=exc)
