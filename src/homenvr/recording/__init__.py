"""Capture process supervision."""

from homenvr.recording.recorder import (
    CaptureProcess,
    FfmpegSegmentRecorder,
    SegmentRecorder,
    build_input_url,
    build_segment_command,
)
from homenvr.recording.registry import RecordingRegistry, TrackedProcess
from homenvr.recording.supervisor import CaptureSupervisor

__all__ = [
    "CaptureProcess",
    "CaptureSupervisor",
    "FfmpegSegmentRecorder",
    "RecordingRegistry",
    "SegmentRecorder",
    "TrackedProcess",
    "build_input_url",
    "build_segment_command",
]
