"""Disk usage probing for the recordings volume."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from homenvr.errors import StorageFilesystemError
from homenvr.interfaces import DiskUsageProbe

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DiskUsage:
    total_bytes: int
    used_bytes: int
    free_bytes: int

    @property
    def percent(self) -> float:
        """Used share of the space available to unprivileged users, like `df`."""
        denominator = self.used_bytes + self.free_bytes
        if denominator <= 0:
            return 0.0
        return self.used_bytes / denominator * 100.0


class ShutilDiskUsageProbe(DiskUsageProbe):
    """Queries `shutil.disk_usage` off the event loop."""

    async def usage(self, path: Path) -> DiskUsage:
        try:
            raw = await asyncio.to_thread(shutil.disk_usage, path)
        except OSError as exc:
            raise StorageFilesystemError(str(path), "disk_usage", cause=exc) from exc
        return DiskUsage(total_bytes=raw.total, used_bytes=raw.used, free_bytes=raw.free)
