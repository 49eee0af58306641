"""Storage reconciler: bring the inventory in line with segment files on disk.

The reconciler only stats files. Segments still being written are picked up
like any other and their end time/size grow on later passes; stored values
never move backwards.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path, PurePosixPath

import anyio

from homenvr.interfaces import CameraRegistry
from homenvr.models.camera import Camera
from homenvr.models.config import ReconcilerConfig
from homenvr.models.enums import RecordingStatus
from homenvr.models.recording import Recording
from homenvr.naming import camera_dirs, is_segment_file, parse_segment_start, relative_filename
from homenvr.repository import RecordingRepository

logger = logging.getLogger(__name__)

# <camera dir>/<date dir>/<segment>: date dirs sit one level below the root.
_MAX_DIR_DEPTH = 1


@dataclass(frozen=True)
class SyncReport:
    cameras: int = 0
    scanned: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    anomalies: int = 0
    degraded: int = 0
    errors: int = 0

    @property
    def writes(self) -> int:
        return self.created + self.updated

    def __add__(self, other: SyncReport) -> SyncReport:
        return SyncReport(
            cameras=self.cameras + other.cameras,
            scanned=self.scanned + other.scanned,
            created=self.created + other.created,
            updated=self.updated + other.updated,
            unchanged=self.unchanged + other.unchanged,
            anomalies=self.anomalies + other.anomalies,
            degraded=self.degraded + other.degraded,
            errors=self.errors + other.errors,
        )


def _log_json(level: int, message: str, payload: dict[str, object]) -> None:
    if "message" not in payload:
        payload = {"message": message, **payload}
    logger.log(level, json.dumps(payload, sort_keys=True))


class StorageReconciler:
    """Derives inventory records from the segment trees of every camera.

    At most one pass runs at a time. Requests that arrive while a pass is in
    flight coalesce into a single follow-up pass, which all of them await.
    """

    def __init__(
        self,
        *,
        registry: CameraRegistry,
        repository: RecordingRepository,
        recordings_dir: Path,
        config: ReconcilerConfig | None = None,
    ) -> None:
        self._cameras = registry
        self._repo = repository
        self._root = recordings_dir
        self._config = config or ReconcilerConfig()
        self._lock = asyncio.Lock()
        self._queued: asyncio.Task[SyncReport] | None = None
        self._last_report: SyncReport | None = None

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    @property
    def last_report(self) -> SyncReport | None:
        return self._last_report

    async def sync(self) -> SyncReport:
        """Run (or join) a reconciliation pass over every registered camera."""
        queued = self._queued
        if queued is not None and not queued.done():
            return await asyncio.shield(queued)
        if not self._lock.locked():
            async with self._lock:
                return await self.run_pass()
        self._queued = asyncio.create_task(self._run_queued(), name="reconcile-follow-up")
        return await asyncio.shield(self._queued)

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        """Hold the pass lock, e.g. to run retention right after a pass."""
        async with self._lock:
            yield

    async def _run_queued(self) -> SyncReport:
        async with self._lock:
            # Requests arriving from here on need a fresh pass.
            self._queued = None
            return await self.run_pass()

    async def run_pass(self) -> SyncReport:
        """One full pass. Callers must hold the pass lock."""
        started = datetime.now(UTC)
        total = SyncReport()
        for camera in await self._cameras.list_cameras():
            try:
                total = total + await self._sync_camera(camera)
            except Exception as exc:
                logger.error(
                    "Reconciliation failed for camera: %s",
                    exc,
                    exc_info=True,
                    extra={"camera_name": camera.name},
                )
                total = total + SyncReport(cameras=1, errors=1)
        self._last_report = total
        _log_json(
            logging.INFO if total.writes or total.errors else logging.DEBUG,
            "Reconciliation pass complete",
            {
                "event": "reconcile_summary",
                "duration_s": round((datetime.now(UTC) - started).total_seconds(), 3),
                **total.__dict__,
            },
        )
        return total

    async def _sync_camera(self, camera: Camera) -> SyncReport:
        known = await self._repo.records_by_path(camera.id)
        seen: set[str] = set()
        report = SyncReport(cameras=1)
        for base_dir in camera_dirs(self._root, camera):
            async for path in self._walk(base_dir, camera):
                path_str = str(path)
                if path_str in seen:
                    continue
                seen.add(path_str)
                report = report + await self._sync_file(camera, base_dir, path, known)
        return report

    async def _walk(self, base_dir: Path, camera: Camera) -> AsyncIterator[Path]:
        """Iterative, bounded walk yielding segment files under `base_dir`."""
        stack: list[tuple[anyio.Path, int]] = [(anyio.Path(base_dir), 0)]
        while stack:
            directory, depth = stack.pop()
            try:
                entries = [entry async for entry in directory.iterdir()]
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning(
                    "Cannot list %s: %s", directory, exc, extra={"camera_name": camera.name}
                )
                continue
            for entry in sorted(entries, key=lambda e: e.name):
                try:
                    is_dir = await entry.is_dir()
                except OSError:
                    continue
                if is_dir:
                    if depth >= _MAX_DIR_DEPTH:
                        continue
                    if len(stack) >= self._config.max_pending_dirs:
                        logger.warning(
                            "Directory backlog full, skipping %s",
                            entry,
                            extra={"camera_name": camera.name},
                        )
                        continue
                    stack.append((entry, depth + 1))
                elif is_segment_file(entry.name):
                    yield Path(entry)

    async def _sync_file(
        self,
        camera: Camera,
        base_dir: Path,
        path: Path,
        known: dict[str, Recording],
    ) -> SyncReport:
        try:
            st = await anyio.Path(path).stat()
        except FileNotFoundError:
            # Evicted or purged between listing and stat.
            return SyncReport()
        except OSError as exc:
            logger.warning("Cannot stat %s: %s", path, exc, extra={"camera_name": camera.name})
            return SyncReport(errors=1)

        filename = relative_filename(base_dir, path)
        degraded = 0
        start = parse_segment_start(PurePosixPath(filename))
        if start is None:
            degraded = 1
            existing = known.get(str(path))
            if existing is not None:
                # ctime moves with every write; keep the start first recorded.
                start = existing.start_time
            else:
                start = datetime.fromtimestamp(_stat_birthtime(st), UTC)
                logger.warning(
                    "Unrecognized segment name %s, using file creation time",
                    path,
                    extra={"camera_name": camera.name},
                )
        mtime = datetime.fromtimestamp(st.st_mtime, UTC)
        end = start + max(timedelta(0), mtime - start)
        size = int(st.st_size)

        try:
            return await self._merge(camera, filename, str(path), start, end, size, known, degraded)
        except Exception as exc:
            logger.error(
                "Failed to reconcile %s: %s",
                path,
                exc,
                exc_info=True,
                extra={"camera_name": camera.name, "recording_id": filename},
            )
            return SyncReport(scanned=1, degraded=degraded, errors=1)

    async def _merge(
        self,
        camera: Camera,
        filename: str,
        path: str,
        start: datetime,
        end: datetime,
        size: int,
        known: dict[str, Recording],
        degraded: int,
    ) -> SyncReport:
        existing = known.get(path)
        if existing is None:
            inserted = await self._repo.insert(
                Recording(
                    camera_id=camera.id,
                    filename=filename,
                    path=path,
                    start_time=start,
                    end_time=end,
                    size=size,
                    status=RecordingStatus.COMPLETE,
                )
            )
            if inserted:
                logger.debug(
                    "New segment recorded",
                    extra={"camera_name": camera.name, "recording_id": filename},
                )
            return SyncReport(
                scanned=1,
                created=int(inserted),
                unchanged=int(not inserted),
                degraded=degraded,
            )

        anomalies = 0
        if size < existing.size or end < existing.end_time:
            anomalies = 1
            logger.warning(
                "Segment shrank on disk (size %d -> %d, end %s -> %s); keeping stored values",
                existing.size,
                size,
                existing.end_time.isoformat(),
                end.isoformat(),
                extra={"camera_name": camera.name, "recording_id": filename},
            )

        if size > existing.size or end > existing.end_time:
            await self._repo.update_progress(
                _require_id(existing), max(size, existing.size), max(end, existing.end_time)
            )
            return SyncReport(scanned=1, updated=1, anomalies=anomalies, degraded=degraded)
        return SyncReport(scanned=1, unchanged=1, anomalies=anomalies, degraded=degraded)


def _stat_birthtime(st: os.stat_result) -> float:
    return getattr(st, "st_birthtime", None) or st.st_ctime


def _require_id(record: Recording) -> int:
    if record.id is None:
        raise ValueError(f"stored recording without id: {record.path}")
    return record.id
