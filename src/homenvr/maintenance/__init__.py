"""Storage maintenance jobs."""

from homenvr.maintenance.gaps import find_gaps
from homenvr.maintenance.monitor import MaintenanceReport, StorageMonitor

__all__ = ["MaintenanceReport", "StorageMonitor", "find_gaps"]
