"""Segment naming convention.

Segments are written by the capture process at
``<recordings_dir>/<sanitized camera name>/<YYYY-MM-DD>/<HH-MM-SS>.mp4`` using
local wall-clock time. Recordings made before the date-partitioned layout
live flat under ``<recordings_dir>/<camera id>/<YYYYMMDD_HHMMSS>*.mp4``.

Everything here is pure: no filesystem access.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from pathlib import Path, PurePath

from homenvr.models.camera import Camera

SEGMENT_SUFFIX = ".mp4"
DATE_DIR_FORMAT = "%Y-%m-%d"
SEGMENT_FILE_FORMAT = "%H-%M-%S"
LEGACY_STAMP_FORMAT = "%Y%m%d_%H%M%S"

_UNSAFE_CHARS = re.compile(r"[^a-z0-9]", re.IGNORECASE)
_REPEATED_UNDERSCORES = re.compile(r"_+")
_DATE_DIR_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SEGMENT_NAME_RE = re.compile(r"^(\d{2}-\d{2}-\d{2})\.mp4$", re.IGNORECASE)
_LEGACY_NAME_RE = re.compile(r"^(\d{8}_\d{6})", re.IGNORECASE)


def sanitize_camera_name(name: str) -> str:
    """Map a display name onto a filesystem-safe directory name."""
    cleaned = _REPEATED_UNDERSCORES.sub("_", _UNSAFE_CHARS.sub("_", name))
    return cleaned or "unknown"


def camera_dir(root: Path, camera: Camera) -> Path:
    """Directory holding the date-partitioned segments of a camera."""
    return root / sanitize_camera_name(camera.name)


def legacy_camera_dir(root: Path, camera: Camera) -> Path:
    """Directory of the legacy flat layout, keyed by camera id."""
    return root / camera.id


def camera_dirs(root: Path, camera: Camera) -> list[Path]:
    """All directories that may contain segments for `camera`, deduplicated."""
    dirs = [camera_dir(root, camera)]
    legacy = legacy_camera_dir(root, camera)
    if legacy != dirs[0]:
        dirs.append(legacy)
    return dirs


def date_dir(root: Path, camera: Camera, instant: datetime) -> Path:
    return camera_dir(root, camera) / _local(instant).strftime(DATE_DIR_FORMAT)


def segment_output_template(root: Path, camera: Camera) -> str:
    """strftime template handed to the capture process as its output path."""
    return str(camera_dir(root, camera) / DATE_DIR_FORMAT / f"{SEGMENT_FILE_FORMAT}{SEGMENT_SUFFIX}")


def segment_path(root: Path, camera: Camera, instant: datetime) -> Path:
    """Path of the segment that starts at `instant`."""
    local = _local(instant)
    return date_dir(root, camera, local) / f"{local.strftime(SEGMENT_FILE_FORMAT)}{SEGMENT_SUFFIX}"


def aligned_segment_start(instant: datetime, segment_seconds: int) -> datetime:
    """Round `instant` down to the wall-clock segment boundary."""
    if segment_seconds <= 0:
        raise ValueError(f"segment_seconds must be positive, got {segment_seconds}")
    local = _local(instant)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = int((local - midnight).total_seconds())
    return midnight + timedelta(seconds=elapsed - elapsed % segment_seconds)


def is_segment_file(name: str) -> bool:
    return name.lower().endswith(SEGMENT_SUFFIX)


def relative_filename(camera_root: Path, path: Path) -> str:
    """Filename stored in the inventory: the path relative to the camera dir."""
    return path.relative_to(camera_root).as_posix()


def parse_segment_start(relative: PurePath) -> datetime | None:
    """Recover the segment start time from a path relative to its camera dir.

    Accepts ``YYYY-MM-DD/HH-MM-SS.mp4`` and the legacy ``YYYYMMDD_HHMMSS*.mp4``.
    Returns a timezone-aware local datetime, or None when the name does not
    follow either convention.
    """
    parts = relative.parts
    try:
        if len(parts) == 2:
            day, name = parts
            match = _SEGMENT_NAME_RE.match(name)
            if not _DATE_DIR_RE.match(day) or match is None:
                return None
            naive = datetime.strptime(f"{day} {match.group(1)}", f"{DATE_DIR_FORMAT} {SEGMENT_FILE_FORMAT}")
        elif len(parts) == 1:
            name = parts[0]
            match = _LEGACY_NAME_RE.match(name)
            if not is_segment_file(name) or match is None:
                return None
            naive = datetime.strptime(match.group(1), LEGACY_STAMP_FORMAT)
        else:
            return None
    except ValueError:
        return None
    return naive.astimezone()


def _local(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant
    return instant.astimezone()
