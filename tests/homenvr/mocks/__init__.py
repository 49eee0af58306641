"""Hermetic fakes for HomeNVR tests."""

from tests.homenvr.mocks.disk import FakeDiskProbe, InventoryDiskProbe
from tests.homenvr.mocks.recorder import FakeCaptureProcess, FakeRecorder
from tests.homenvr.mocks.runner import FakeRunner
from tests.homenvr.mocks.settings import MemorySettingsStore

__all__ = [
    "FakeCaptureProcess",
    "FakeDiskProbe",
    "FakeRecorder",
    "FakeRunner",
    "InventoryDiskProbe",
    "MemorySettingsStore",
]
