"""Disk-usage-triggered retention: evict the oldest recordings first."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from homenvr.errors import RetentionExhaustedError, StorageFilesystemError
from homenvr.interfaces import ActiveRecordingSource, DiskUsageProbe, SettingsStore
from homenvr.models.settings import Settings
from homenvr.repository import RecordingRepository
from homenvr.storage.files import unlink_segment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionReport:
    triggered: bool
    usage_before: float
    usage_after: float
    ceiling: int
    floor: int
    deleted: int = 0
    freed_bytes: int = 0
    delete_errors: int = 0
    protected: int = 0
    capped: bool = False
    exhausted: RetentionExhaustedError | None = None

    def as_payload(self) -> dict[str, object]:
        return {
            "triggered": self.triggered,
            "usage_before": round(self.usage_before, 2),
            "usage_after": round(self.usage_after, 2),
            "ceiling": self.ceiling,
            "floor": self.floor,
            "deleted": self.deleted,
            "freed_bytes": self.freed_bytes,
            "delete_errors": self.delete_errors,
            "protected": self.protected,
            "capped": self.capped,
            "exhausted": self.exhausted is not None,
        }


def _log_json(level: int, message: str, payload: dict[str, object]) -> None:
    if "message" not in payload:
        payload = {"message": message, **payload}
    logger.log(level, json.dumps(payload, sort_keys=True))


class RetentionPolicy:
    """Keeps usage of the recordings volume between the floor and ceiling.

    Usage is the larger of the volume's used percentage and, when a storage
    cap is configured, the inventory's total size relative to that cap.
    """

    def __init__(
        self,
        *,
        repository: RecordingRepository,
        settings: SettingsStore,
        probe: DiskUsageProbe,
        recordings_dir: Path,
        active: ActiveRecordingSource | None = None,
        segment_seconds: int = 300,
        max_deletions_per_run: int = 50,
    ) -> None:
        self._repo = repository
        self._settings = settings
        self._probe = probe
        self._root = recordings_dir
        self._active = active
        self._segment_seconds = segment_seconds
        self._max_deletions = max(1, int(max_deletions_per_run))

    async def usage_percent(self, settings: Settings | None = None) -> float:
        settings = settings or await self._settings.get_settings()
        usage = (await self._probe.usage(self._root)).percent
        if settings.storage_cap_bytes:
            inventory_bytes = await self._repo.total_size()
            usage = max(usage, inventory_bytes / settings.storage_cap_bytes * 100.0)
        return usage

    async def protected_paths(self) -> set[str]:
        """Paths of segments that capture processes are still writing.

        The newest record of each recording camera counts as active when it
        started no earlier than one segment before the process did.
        """
        if self._active is None:
            return set()
        paths: set[str] = set()
        slack = timedelta(seconds=self._segment_seconds)
        for marker in self._active.active_recordings():
            latest = await self._repo.latest_for_camera(marker.camera_id)
            if latest is not None and latest.start_time >= marker.started_at - slack:
                paths.add(latest.path)
        return paths

    async def check_and_cleanup(self) -> RetentionReport:
        settings = await self._settings.get_settings()
        ceiling = settings.clean_threshold_percent
        floor = settings.target_threshold_percent
        usage_before = await self.usage_percent(settings)

        if usage_before <= ceiling:
            return RetentionReport(
                triggered=False,
                usage_before=usage_before,
                usage_after=usage_before,
                ceiling=ceiling,
                floor=floor,
            )

        logger.warning(
            "Disk usage %.1f%% above %d%%, evicting oldest recordings down to %d%%",
            usage_before,
            ceiling,
            floor,
        )
        protected = await self.protected_paths()
        skipped: set[str] = set(protected)
        usage = usage_before
        deleted = 0
        freed = 0
        delete_errors = 0
        attempts = 0
        exhausted: RetentionExhaustedError | None = None

        while usage > floor:
            if attempts >= self._max_deletions:
                break
            record = await self._repo.oldest_eligible(skipped)
            if record is None:
                exhausted = RetentionExhaustedError(usage, float(ceiling))
                logger.error("%s", exhausted)
                break
            attempts += 1
            try:
                await unlink_segment(record.path)
            except StorageFilesystemError as exc:
                delete_errors += 1
                skipped.add(record.path)
                logger.error(
                    "Failed to delete segment %s: %s",
                    record.path,
                    exc,
                    exc_info=exc,
                    extra={"camera_name": record.camera_id, "recording_id": record.filename},
                )
                continue
            if record.id is not None:
                await self._repo.delete(record.id)
            deleted += 1
            freed += record.size
            logger.info(
                "Evicted recording (%d bytes)",
                record.size,
                extra={"camera_name": record.camera_id, "recording_id": record.filename},
            )
            usage = await self.usage_percent(settings)

        report = RetentionReport(
            triggered=True,
            usage_before=usage_before,
            usage_after=usage,
            ceiling=ceiling,
            floor=floor,
            deleted=deleted,
            freed_bytes=freed,
            delete_errors=delete_errors,
            protected=len(protected),
            capped=attempts >= self._max_deletions and usage > floor,
            exhausted=exhausted,
        )
        _log_json(
            logging.INFO,
            "Retention run complete",
            {"event": "retention_summary", **report.as_payload()},
        )
        return report
