"""Periodic storage maintenance: reconcile, then enforce retention."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from homenvr.interfaces import Shutdownable
from homenvr.storage.reconciler import StorageReconciler, SyncReport
from homenvr.storage.retention import RetentionPolicy, RetentionReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaintenanceReport:
    sync: SyncReport | None
    retention: RetentionReport | None


class StorageMonitor(Shutdownable):
    """Runs a reconciliation pass followed by a retention check every interval.

    Both steps run under the reconciler's pass lock so retention never sees
    a half-finished pass. The first run happens immediately on start.
    """

    def __init__(
        self,
        *,
        reconciler: StorageReconciler,
        retention: RetentionPolicy,
        interval_s: float = 10.0,
    ) -> None:
        self._reconciler = reconciler
        self._retention = retention
        self._interval_s = interval_s
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._last_run: float | None = None

    @property
    def last_run(self) -> float | None:
        """Monotonic timestamp of the last completed run."""
        return self._last_run

    async def start(self) -> None:
        if self._task is not None:
            logger.warning("StorageMonitor already started")
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="storage-monitor")

    async def run_once(self) -> MaintenanceReport:
        sync_report: SyncReport | None = None
        retention_report: RetentionReport | None = None
        async with self._reconciler.exclusive():
            try:
                sync_report = await self._reconciler.run_pass()
            except Exception as exc:
                logger.error("Storage sync failed: %s", exc, exc_info=True)
            try:
                retention_report = await self._retention.check_and_cleanup()
            except Exception as exc:
                logger.error("Retention check failed: %s", exc, exc_info=True)
        self._last_run = time.monotonic()
        return MaintenanceReport(sync=sync_report, retention=retention_report)

    async def shutdown(self, timeout: float | None = None) -> None:
        task = self._task
        if task is None:
            return
        self._stop_event.set()
        if not task.done():
            try:
                await asyncio.wait_for(task, timeout=timeout or 5.0)
            except asyncio.TimeoutError:
                logger.warning("StorageMonitor shutdown timed out, cancelling task")
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._task = None

    def is_healthy(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_s)
            except asyncio.TimeoutError:
                continue
