"""RecordingRepository: inventory access with bounded retries."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import date, datetime, time, timedelta
from typing import TypeVar

from homenvr.interfaces import InventoryStore
from homenvr.models.config import RetryConfig
from homenvr.models.recording import Recording

logger = logging.getLogger(__name__)

TResult = TypeVar("TResult")


def local_day_bounds(day: date) -> tuple[datetime, datetime]:
    """[start, end) of a calendar day in the node's local timezone."""
    start = datetime.combine(day, time.min).astimezone()
    end = datetime.combine(day + timedelta(days=1), time.min).astimezone()
    return start, end


class RecordingRepository:
    """Inventory operations used by the engine, retried on transient DB errors."""

    def __init__(
        self,
        store: InventoryStore,
        retry: RetryConfig | None = None,
        should_retry: Callable[[Exception], bool] | None = None,
    ) -> None:
        self._store = store
        self._retry = retry or RetryConfig()
        self._should_retry = should_retry or _never_retry
        self._max_attempts = max(1, int(self._retry.max_attempts))
        self._backoff_s = max(0.0, float(self._retry.backoff_s))

    async def get(self, recording_id: int) -> Recording | None:
        return await self._run_with_retries(
            label="Inventory get",
            key=str(recording_id),
            op=lambda: self._store.get_recording(recording_id),
        )

    async def get_by_path(self, path: str) -> Recording | None:
        return await self._run_with_retries(
            label="Inventory lookup",
            key=path,
            op=lambda: self._store.get_by_path(path),
        )

    async def records_by_path(self, camera_id: str) -> dict[str, Recording]:
        return await self._run_with_retries(
            label="Inventory scan",
            key=camera_id,
            op=lambda: self._store.records_by_path(camera_id),
        )

    async def insert(self, recording: Recording) -> bool:
        return await self._run_with_retries(
            label="Inventory insert",
            key=recording.path,
            op=lambda: self._store.insert_recording(recording),
        )

    async def update_progress(self, recording_id: int, size: int, end_time: datetime) -> None:
        await self._run_with_retries(
            label="Inventory update",
            key=str(recording_id),
            op=lambda: self._store.update_progress(recording_id, size, end_time),
        )

    async def oldest_eligible(self, exclude_paths: Iterable[str] = ()) -> Recording | None:
        excluded = frozenset(exclude_paths)
        return await self._run_with_retries(
            label="Oldest recording lookup",
            key="*",
            op=lambda: self._store.oldest_recording(excluded),
        )

    async def latest_for_camera(self, camera_id: str) -> Recording | None:
        return await self._run_with_retries(
            label="Latest recording lookup",
            key=camera_id,
            op=lambda: self._store.latest_recording(camera_id),
        )

    async def list_overlapping(
        self, camera_id: str, start: datetime, end: datetime
    ) -> list[Recording]:
        return await self._run_with_retries(
            label="Overlap query",
            key=camera_id,
            op=lambda: self._store.list_overlapping(camera_id, start, end),
        )

    async def find_covering(
        self, camera_id: str, instant: datetime, tolerance_s: float = 0.0
    ) -> Recording | None:
        """Record containing `instant`, else the nearest one within tolerance.

        Ties between two containing records (a boundary instant) go to the
        later segment, since the clip continues forward from there.
        """
        tolerance = timedelta(seconds=max(0.0, tolerance_s))
        candidates = await self.list_overlapping(
            camera_id, instant - tolerance, instant + tolerance
        )
        containing = [record for record in candidates if record.contains(instant)]
        if containing:
            return max(containing, key=lambda record: record.start_time)
        if not candidates:
            return None

        def _distance(record: Recording) -> float:
            if instant < record.start_time:
                return (record.start_time - instant).total_seconds()
            return (instant - record.end_time).total_seconds()

        return min(candidates, key=_distance)

    async def list_recordings(
        self, *, camera_id: str | None = None, day: date | None = None
    ) -> list[Recording]:
        """Newest first, optionally filtered by camera and local calendar day."""
        since: datetime | None = None
        until: datetime | None = None
        if day is not None:
            since, until = local_day_bounds(day)
        return await self._run_with_retries(
            label="Inventory list",
            key=camera_id or "*",
            op=lambda: self._store.list_recordings(
                camera_id=camera_id, since=since, until=until, newest_first=True
            ),
        )

    async def list_all_ordered(self, camera_id: str | None = None) -> list[Recording]:
        """Oldest first; used for gap reports."""
        return await self._run_with_retries(
            label="Inventory list",
            key=camera_id or "*",
            op=lambda: self._store.list_recordings(camera_id=camera_id, newest_first=False),
        )

    async def list_dates(self) -> list[date]:
        """Local calendar days that have footage, newest first."""
        starts = await self._run_with_retries(
            label="Date listing",
            key="*",
            op=self._store.list_start_times,
        )
        days = {start.astimezone().date() for start in starts}
        return sorted(days, reverse=True)

    async def delete(self, recording_id: int) -> bool:
        return await self._run_with_retries(
            label="Inventory delete",
            key=str(recording_id),
            op=lambda: self._store.delete_recording(recording_id),
        )

    async def delete_all(self) -> int:
        return await self._run_with_retries(
            label="Inventory purge",
            key="*",
            op=self._store.delete_all,
        )

    async def total_size(self) -> int:
        return await self._run_with_retries(
            label="Inventory size",
            key="*",
            op=self._store.total_size,
        )

    async def _run_with_retries(
        self,
        *,
        label: str,
        key: str,
        op: Callable[[], Awaitable[TResult]],
    ) -> TResult:
        attempt = 1

        while True:
            try:
                return await op()
            except Exception as exc:
                if not self._should_retry(exc) or attempt >= self._max_attempts:
                    raise
                logger.warning(
                    "%s failed for %s (attempt %d/%d): %s",
                    label,
                    key,
                    attempt,
                    self._max_attempts,
                    exc,
                )
                delay = self._backoff_s * (2 ** (attempt - 1))
                if delay > 0:
                    await asyncio.sleep(delay)
                attempt += 1


def _never_retry(exc: Exception) -> bool:
    _ = exc
    return False
