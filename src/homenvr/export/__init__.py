"""Clip export."""

from homenvr.export.exporter import ClipExporter, compute_clip_window
from homenvr.export.runner import CommandResult, CommandRunner, SubprocessRunner

__all__ = [
    "ClipExporter",
    "CommandResult",
    "CommandRunner",
    "SubprocessRunner",
    "compute_clip_window",
]
