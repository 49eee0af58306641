"""Tests for the capture supervisor."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest

from homenvr.models.camera import Camera
from homenvr.models.config import RecorderConfig
from homenvr.models.enums import RestartPolicy
from homenvr.recording import CaptureSupervisor
from homenvr.registry import ConfigCameraRegistry
from tests.homenvr.mocks import FakeRecorder


async def _eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


class _Harness:
    def __init__(
        self,
        recordings_dir: Path,
        cameras: list[Camera],
        *,
        config: RecorderConfig | None = None,
        ignore_sigterm: bool = False,
    ) -> None:
        self.registry = ConfigCameraRegistry(cameras)
        self.recorder = FakeRecorder(ignore_sigterm=ignore_sigterm)
        self.reconciled: list[str] = []
        self.supervisor = CaptureSupervisor(
            registry=self.registry,
            recorder=self.recorder,
            recordings_dir=recordings_dir,
            config=config or RecorderConfig(restart_delay_s=0.01, stop_timeout_s=0.2),
            on_process_exit=self._on_exit,
        )

    async def _on_exit(self, camera_id: str) -> None:
        self.reconciled.append(camera_id)


@pytest.fixture
async def harness(
    recordings_dir: Path, front_camera: Camera
) -> AsyncGenerator[_Harness, None]:
    h = _Harness(recordings_dir, [front_camera])
    yield h
    await h.supervisor.shutdown(timeout=0.1)


@pytest.mark.asyncio
async def test_start_is_idempotent(harness: _Harness, front_camera: Camera, recordings_dir: Path) -> None:
    """A second start while recording returns the same marker and spawns nothing."""
    # When starting twice
    first = await harness.supervisor.start_recording(front_camera)
    second = await harness.supervisor.start_recording(front_camera)

    # Then one process runs with the strftime output template
    assert first is not None
    assert second == first
    assert len(harness.recorder.spawned) == 1
    camera_id, template, process = harness.recorder.spawned[0]
    assert camera_id == front_camera.id
    assert template.endswith("%Y-%m-%d/%H-%M-%S.mp4")
    assert first.pid == process.pid
    assert (recordings_dir / "Front_Door").is_dir()


@pytest.mark.asyncio
async def test_stop_is_immediate_and_never_restarts(
    harness: _Harness, front_camera: Camera
) -> None:
    """Stopped cameras drop bookkeeping at once and are not restarted."""
    # Given a recording camera
    await harness.supervisor.start_recording(front_camera)
    process = harness.recorder.processes_for(front_camera.id)[0]

    # When stopping it
    stopped = harness.supervisor.stop_recording(front_camera.id)

    # Then it is gone right away and the exit triggers a reconcile, not a restart
    assert stopped is True
    assert harness.supervisor.get_active_info(front_camera.id) is None
    assert process.signals == [signal.SIGTERM]
    await _eventually(lambda: harness.reconciled == [front_camera.id])
    await asyncio.sleep(0.05)
    assert len(harness.recorder.spawned) == 1
    assert not harness.supervisor.is_restart_pending(front_camera.id)


@pytest.mark.asyncio
async def test_stop_during_spawn_terminates_new_process(
    harness: _Harness, front_camera: Camera
) -> None:
    """A stop issued while the spawn is in flight wins once the spawn returns."""
    # Given a slow spawn in progress
    harness.recorder.spawn_delay_s = 0.05
    start = asyncio.create_task(harness.supervisor.start_recording(front_camera))
    await asyncio.sleep(0.01)

    # When stopping before the spawn completes
    stopped = harness.supervisor.stop_recording(front_camera.id)
    marker = await start

    # Then the new process is terminated and nothing is tracked or restarted
    assert stopped is True
    assert marker is None
    assert harness.supervisor.get_active_info(front_camera.id) is None
    process = harness.recorder.processes_for(front_camera.id)[0]
    assert process.signals == [signal.SIGTERM]
    await _eventually(lambda: harness.reconciled == [front_camera.id])
    await asyncio.sleep(0.05)
    assert len(harness.recorder.spawned) == 1
    assert not harness.supervisor.is_restart_pending(front_camera.id)


@pytest.mark.asyncio
async def test_start_after_stop_during_spawn_keeps_recording(
    harness: _Harness, front_camera: Camera
) -> None:
    # Given start, stop and start again while the first spawn is in flight
    harness.recorder.spawn_delay_s = 0.05
    start = asyncio.create_task(harness.supervisor.start_recording(front_camera))
    await asyncio.sleep(0.01)
    harness.supervisor.stop_recording(front_camera.id)
    await harness.supervisor.start_recording(front_camera)

    # When the spawn completes
    marker = await start

    # Then the last request wins and the camera records
    assert marker is not None
    assert harness.supervisor.get_active_info(front_camera.id) == marker


@pytest.mark.asyncio
async def test_stop_unknown_camera_returns_false(harness: _Harness) -> None:
    assert harness.supervisor.stop_recording("nope") is False


@pytest.mark.asyncio
async def test_crash_restarts_enabled_camera(harness: _Harness, front_camera: Camera) -> None:
    """An exited process of an enabled camera is replaced after the delay."""
    # Given a recording camera
    marker = await harness.supervisor.start_recording(front_camera)
    assert marker is not None

    # When its process crashes
    harness.recorder.processes_for(front_camera.id)[0].exit(1)

    # Then a new generation is tracked after the restart delay
    await _eventually(lambda: len(harness.recorder.spawned) == 2)
    await _eventually(lambda: harness.supervisor.get_active_info(front_camera.id) is not None)
    restarted = harness.supervisor.get_active_info(front_camera.id)
    assert restarted is not None
    assert restarted.generation > marker.generation
    assert front_camera.id in harness.reconciled


@pytest.mark.asyncio
async def test_disable_during_restart_delay_prevents_restart(
    recordings_dir: Path, front_camera: Camera
) -> None:
    """Disabling a camera while its restart is pending cancels the restart."""
    # Given a supervisor with a noticeable restart delay
    h = _Harness(
        recordings_dir,
        [front_camera],
        config=RecorderConfig(restart_delay_s=0.1, stop_timeout_s=0.2),
    )
    try:
        await h.supervisor.start_recording(front_camera)
        h.recorder.processes_for(front_camera.id)[0].exit(1)
        await _eventually(lambda: h.supervisor.is_restart_pending(front_camera.id))

        # When the camera is disabled before the delay elapses
        await h.registry.set_enabled(front_camera.id, False)
        await asyncio.sleep(0.2)

        # Then no new process is spawned
        assert len(h.recorder.spawned) == 1
        assert h.supervisor.get_active_info(front_camera.id) is None
        assert not h.supervisor.is_restart_pending(front_camera.id)
    finally:
        await h.supervisor.shutdown(timeout=0.1)


@pytest.mark.asyncio
async def test_stop_during_restart_delay_cancels_restart(
    recordings_dir: Path, front_camera: Camera
) -> None:
    h = _Harness(
        recordings_dir,
        [front_camera],
        config=RecorderConfig(restart_delay_s=0.1, stop_timeout_s=0.2),
    )
    try:
        await h.supervisor.start_recording(front_camera)
        h.recorder.processes_for(front_camera.id)[0].exit(1)
        await _eventually(lambda: h.supervisor.is_restart_pending(front_camera.id))

        h.supervisor.stop_recording(front_camera.id)
        await asyncio.sleep(0.2)

        assert len(h.recorder.spawned) == 1
    finally:
        await h.supervisor.shutdown(timeout=0.1)


@pytest.mark.asyncio
async def test_spawn_failure_is_retried(harness: _Harness, front_camera: Camera) -> None:
    """A camera whose first spawn fails is retried like a crash."""
    # Given the recorder fails once
    harness.recorder.fail_next = 1

    # When starting
    marker = await harness.supervisor.start_recording(front_camera)

    # Then the start reports failure and a later retry succeeds
    assert marker is None
    await _eventually(lambda: len(harness.recorder.spawned) == 1)
    await _eventually(lambda: harness.supervisor.get_active_info(front_camera.id) is not None)


@pytest.mark.asyncio
async def test_old_generation_exit_does_not_touch_new_process(
    harness: _Harness, front_camera: Camera
) -> None:
    """A late exit event from a stopped process leaves its successor alone."""
    # Given a stop immediately followed by a new start
    await harness.supervisor.start_recording(front_camera)
    harness.supervisor.stop_recording(front_camera.id)
    replacement = await harness.supervisor.start_recording(front_camera)
    assert replacement is not None

    # When the old process's exit is processed
    await _eventually(lambda: harness.reconciled == [front_camera.id])

    # Then the replacement is still tracked
    current = harness.supervisor.get_active_info(front_camera.id)
    assert current == replacement
    assert len(harness.recorder.spawned) == 2


@pytest.mark.asyncio
async def test_start_all_skips_disabled(recordings_dir: Path, front_camera: Camera) -> None:
    disabled = Camera(id="cam-off", name="Off", address="rtsp://x", enabled=False)
    h = _Harness(recordings_dir, [front_camera, disabled])
    try:
        started = await h.supervisor.start_all()

        assert started == 1
        assert [m.camera_id for m in h.supervisor.active_recordings()] == [front_camera.id]
    finally:
        await h.supervisor.shutdown(timeout=0.1)


@pytest.mark.asyncio
async def test_shutdown_escalates_to_sigkill(recordings_dir: Path, front_camera: Camera) -> None:
    """Processes ignoring SIGTERM are killed once the timeout passes."""
    # Given a process that ignores SIGTERM
    h = _Harness(recordings_dir, [front_camera], ignore_sigterm=True)
    await h.supervisor.start_recording(front_camera)
    process = h.recorder.processes_for(front_camera.id)[0]

    # When shutting down with a short timeout
    await h.supervisor.shutdown(timeout=0.05)

    # Then it got SIGTERM, then SIGKILL, and nothing restarted
    assert process.signals == [signal.SIGTERM, signal.SIGKILL]
    assert process.returncode == -signal.SIGKILL
    assert h.supervisor.active_recordings() == []
    assert len(h.recorder.spawned) == 1


@pytest.mark.asyncio
async def test_start_after_shutdown_is_ignored(harness: _Harness, front_camera: Camera) -> None:
    await harness.supervisor.shutdown(timeout=0.1)

    assert await harness.supervisor.start_recording(front_camera) is None
    assert harness.recorder.spawned == []


def test_exponential_delay_is_bounded_and_resets(recordings_dir: Path, front_camera: Camera) -> None:
    """Delays double per quick failure, cap out, and reset after a stable run."""
    # Given an exponential policy
    config = RecorderConfig(
        restart_policy=RestartPolicy.EXPONENTIAL,
        restart_delay_s=1.0,
        max_restart_delay_s=4.0,
        stable_after_s=60.0,
    )
    h = _Harness(recordings_dir, [front_camera], config=config)

    # When computing delays after short-lived processes, then after a stable one
    quick = [h.supervisor._next_restart_delay(front_camera.id, uptime_s=1.0) for _ in range(4)]
    stable = h.supervisor._next_restart_delay(front_camera.id, uptime_s=120.0)

    # Then the sequence doubles up to the cap and resets
    assert quick == [1.0, 2.0, 4.0, 4.0]
    assert stable == 1.0


def test_fixed_delay_is_default(recordings_dir: Path, front_camera: Camera) -> None:
    h = _Harness(recordings_dir, [front_camera], config=RecorderConfig(restart_delay_s=5.0))

    delays = {h.supervisor._next_restart_delay(front_camera.id, uptime_s=0.0) for _ in range(3)}

    assert delays == {5.0}
