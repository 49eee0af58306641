"""Tests for disk-usage-triggered retention."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from homenvr.errors import StorageFilesystemError
from homenvr.models.camera import Camera
from homenvr.models.recording import ActiveRecording
from homenvr.models.settings import Settings
from homenvr.registry import ConfigCameraRegistry
from homenvr.repository import RecordingRepository
from homenvr.storage import retention as retention_module
from homenvr.storage.reconciler import StorageReconciler
from homenvr.storage.retention import RetentionPolicy
from tests.homenvr.mocks import FakeDiskProbe, InventoryDiskProbe, MemorySettingsStore

BASE = datetime(2024, 3, 10, 9, 0).astimezone()


class _Active:
    def __init__(self, markers: list[ActiveRecording]) -> None:
        self.markers = markers

    def active_recordings(self) -> list[ActiveRecording]:
        return list(self.markers)


async def _seed(
    repository: RecordingRepository,
    recordings_dir: Path,
    camera: Camera,
    make_segment: Callable[..., Path],
    count: int,
    size: int = 100,
) -> list[Path]:
    """Write `count` consecutive segments and inventory them."""
    paths = [
        make_segment(camera, BASE + timedelta(minutes=5 * i), size=size) for i in range(count)
    ]
    reconciler = StorageReconciler(
        registry=ConfigCameraRegistry([camera]),
        repository=repository,
        recordings_dir=recordings_dir,
    )
    await reconciler.sync()
    return paths


def _policy(
    repository: RecordingRepository,
    recordings_dir: Path,
    *,
    settings: Settings | None = None,
    probe=None,
    active: _Active | None = None,
    max_deletions: int = 50,
) -> RetentionPolicy:
    return RetentionPolicy(
        repository=repository,
        settings=MemorySettingsStore(settings or Settings()),
        probe=probe or InventoryDiskProbe(repository, total_bytes=1000),
        recordings_dir=recordings_dir,
        active=active,
        segment_seconds=300,
        max_deletions_per_run=max_deletions,
    )


@pytest.mark.asyncio
async def test_below_ceiling_does_nothing(
    repository: RecordingRepository,
    recordings_dir: Path,
    front_camera: Camera,
    make_segment: Callable[..., Path],
) -> None:
    # Given usage at 50% with an 80% ceiling
    await _seed(repository, recordings_dir, front_camera, make_segment, count=5)
    policy = _policy(repository, recordings_dir)

    # When checking
    report = await policy.check_and_cleanup()

    # Then nothing is evicted
    assert report.triggered is False
    assert report.deleted == 0
    assert len(await repository.list_recordings()) == 5


@pytest.mark.asyncio
async def test_evicts_oldest_until_floor(
    repository: RecordingRepository,
    recordings_dir: Path,
    front_camera: Camera,
    make_segment: Callable[..., Path],
) -> None:
    """Usage above the ceiling is brought down to the floor, oldest first."""
    # Given usage at 90% with 80/70 thresholds
    paths = await _seed(repository, recordings_dir, front_camera, make_segment, count=9)
    policy = _policy(repository, recordings_dir)

    # When checking
    report = await policy.check_and_cleanup()

    # Then the two oldest segments are gone from disk and inventory
    assert report.triggered is True
    assert report.deleted == 2
    assert report.freed_bytes == 200
    assert report.usage_before == pytest.approx(90.0)
    assert report.usage_after == pytest.approx(70.0)
    assert not paths[0].exists()
    assert not paths[1].exists()
    assert paths[2].exists()
    remaining = await repository.list_all_ordered()
    assert [r.path for r in remaining] == [str(p) for p in paths[2:]]


@pytest.mark.asyncio
async def test_active_segment_is_never_evicted(
    repository: RecordingRepository,
    recordings_dir: Path,
    front_camera: Camera,
    make_segment: Callable[..., Path],
) -> None:
    """The segment a running process writes survives even an exhausted run."""
    # Given a recording camera whose latest segment started with the process
    paths = await _seed(repository, recordings_dir, front_camera, make_segment, count=5)
    marker = ActiveRecording(
        camera_id=front_camera.id,
        camera_name=front_camera.name,
        pid=1234,
        started_at=(BASE + timedelta(minutes=20)).astimezone(UTC),
        generation=1,
    )
    policy = _policy(
        repository,
        recordings_dir,
        settings=Settings(clean_threshold_percent=40, target_threshold_percent=1),
        active=_Active([marker]),
    )

    # When cleanup wants more space than exists
    report = await policy.check_and_cleanup()

    # Then everything but the active segment is evicted and exhaustion is reported
    assert report.protected == 1
    assert report.deleted == 4
    assert report.exhausted is not None
    assert paths[-1].exists()
    remaining = await repository.list_recordings()
    assert [r.path for r in remaining] == [str(paths[-1])]


@pytest.mark.asyncio
async def test_stale_marker_protects_nothing(
    repository: RecordingRepository,
    recordings_dir: Path,
    front_camera: Camera,
    make_segment: Callable[..., Path],
) -> None:
    """A process started long after the newest segment has no segment on disk yet."""
    await _seed(repository, recordings_dir, front_camera, make_segment, count=2)
    marker = ActiveRecording(
        camera_id=front_camera.id,
        camera_name=front_camera.name,
        pid=1,
        started_at=(BASE + timedelta(hours=2)).astimezone(UTC),
        generation=3,
    )
    policy = _policy(repository, recordings_dir, active=_Active([marker]))

    assert await policy.protected_paths() == set()


@pytest.mark.asyncio
async def test_deletions_per_run_are_capped(
    repository: RecordingRepository,
    recordings_dir: Path,
    front_camera: Camera,
    make_segment: Callable[..., Path],
) -> None:
    # Given usage far above the ceiling and a cap of two deletions
    await _seed(repository, recordings_dir, front_camera, make_segment, count=10)
    policy = _policy(repository, recordings_dir, max_deletions=2)

    # When checking
    report = await policy.check_and_cleanup()

    # Then the run stops early and says so
    assert report.deleted == 2
    assert report.capped is True
    assert report.usage_after == pytest.approx(80.0)


@pytest.mark.asyncio
async def test_failed_delete_is_skipped(
    repository: RecordingRepository,
    recordings_dir: Path,
    front_camera: Camera,
    make_segment: Callable[..., Path],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A file that cannot be removed keeps its record and the next one goes."""
    # Given the oldest segment cannot be unlinked
    paths = await _seed(repository, recordings_dir, front_camera, make_segment, count=9)
    real_unlink = retention_module.unlink_segment

    async def _unlink(path: str | Path) -> bool:
        if str(path) == str(paths[0]):
            raise StorageFilesystemError(str(path), "unlink", cause=PermissionError("denied"))
        return await real_unlink(path)

    monkeypatch.setattr(retention_module, "unlink_segment", _unlink)
    policy = _policy(repository, recordings_dir)

    # When checking
    report = await policy.check_and_cleanup()

    # Then the failure is counted and eviction moves on
    assert report.delete_errors == 1
    assert report.deleted == 2
    assert paths[0].exists()
    assert not paths[1].exists()
    assert not paths[2].exists()
    assert await repository.get_by_path(str(paths[0])) is not None


@pytest.mark.asyncio
async def test_storage_cap_triggers_cleanup(
    repository: RecordingRepository,
    recordings_dir: Path,
    front_camera: Camera,
    make_segment: Callable[..., Path],
) -> None:
    """A configured cap counts even when the volume itself is mostly empty."""
    # Given a 10% full volume but 450 of 500 capped bytes used
    await _seed(repository, recordings_dir, front_camera, make_segment, count=9, size=50)
    policy = _policy(
        repository,
        recordings_dir,
        settings=Settings(storage_cap_bytes=500),
        probe=FakeDiskProbe(percent=10.0),
    )

    # When checking
    report = await policy.check_and_cleanup()

    # Then usage is computed against the cap
    assert report.usage_before == pytest.approx(90.0)
    assert report.deleted == 2
    assert report.usage_after == pytest.approx(70.0)


@pytest.mark.asyncio
async def test_threshold_changes_apply_on_next_run(
    repository: RecordingRepository,
    recordings_dir: Path,
    front_camera: Camera,
    make_segment: Callable[..., Path],
) -> None:
    """Settings are read on every run."""
    await _seed(repository, recordings_dir, front_camera, make_segment, count=6)
    settings = MemorySettingsStore(Settings())
    policy = RetentionPolicy(
        repository=repository,
        settings=settings,
        probe=InventoryDiskProbe(repository, total_bytes=1000),
        recordings_dir=recordings_dir,
    )
    assert (await policy.check_and_cleanup()).triggered is False

    settings.settings = Settings(clean_threshold_percent=50, target_threshold_percent=40)
    report = await policy.check_and_cleanup()

    assert report.triggered is True
    assert report.deleted == 2
