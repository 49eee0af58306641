"""Shared pytest fixtures for HomeNVR tests."""

from __future__ import annotations

import os
import sys
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta
from pathlib import Path

# Add src to sys.path for imports
src_path = Path(__file__).parent.parent.parent / "src"
if str(src_path.resolve()) not in sys.path:
    sys.path.insert(0, str(src_path.resolve()))

import pytest

from homenvr.models.camera import Camera
from homenvr.models.config import RetryConfig
from homenvr.models.recording import Recording
from homenvr.naming import camera_dir, relative_filename, segment_path
from homenvr.repository import RecordingRepository
from homenvr.state import SQLAlchemyInventoryStore


@pytest.fixture
async def store(tmp_path: Path) -> AsyncGenerator[SQLAlchemyInventoryStore, None]:
    """Inventory store on a throwaway SQLite file."""
    dsn = f"sqlite+aiosqlite:///{tmp_path / 'tests.db'}"
    inventory = SQLAlchemyInventoryStore(dsn)
    assert await inventory.initialize(create_schema=True)
    yield inventory
    await inventory.shutdown()


@pytest.fixture
def repository(store: SQLAlchemyInventoryStore) -> RecordingRepository:
    return RecordingRepository(
        store,
        retry=RetryConfig(max_attempts=1, backoff_s=0.0),
        should_retry=store.dialect.is_retryable_error,
    )


@pytest.fixture
def recordings_dir(tmp_path: Path) -> Path:
    path = tmp_path / "recordings"
    path.mkdir()
    return path


@pytest.fixture
def front_camera() -> Camera:
    return Camera(id="cam-front", name="Front Door", address="rtsp://10.0.0.5/stream")


@pytest.fixture
def make_segment(recordings_dir: Path) -> Callable[..., Path]:
    """Write a segment file where the recorder would put it."""

    def _make(
        camera: Camera,
        start: datetime,
        *,
        size: int = 100,
        mtime: datetime | None = None,
    ) -> Path:
        path = segment_path(recordings_dir, camera, start)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\0" * size)
        stamp = (mtime or start + timedelta(seconds=300)).timestamp()
        os.utime(path, (stamp, stamp))
        return path

    return _make


@pytest.fixture
def make_record(recordings_dir: Path) -> Callable[..., Recording]:
    """Build an inventory record without touching the filesystem."""

    def _make(
        camera: Camera,
        start: datetime,
        *,
        duration_s: float = 300.0,
        size: int = 100,
    ) -> Recording:
        path = segment_path(recordings_dir, camera, start)
        return Recording(
            camera_id=camera.id,
            filename=relative_filename(camera_dir(recordings_dir, camera), path),
            path=str(path),
            start_time=start,
            end_time=start + timedelta(seconds=duration_s),
            size=size,
        )

    return _make
