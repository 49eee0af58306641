"""Tests for the segment naming convention."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path, PurePosixPath

import pytest

from homenvr.models.camera import Camera
from homenvr.naming import (
    aligned_segment_start,
    camera_dir,
    camera_dirs,
    parse_segment_start,
    relative_filename,
    sanitize_camera_name,
    segment_output_template,
    segment_path,
)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Front Door", "Front_Door"),
        ("Back-yard #2", "Back_yard_2"),
        ("garage", "garage"),
        ("   ", "_"),
    ],
)
def test_sanitize_camera_name(name: str, expected: str) -> None:
    """Unsafe characters collapse into single underscores."""
    assert sanitize_camera_name(name) == expected


def test_segment_path_round_trips_through_parser(tmp_path: Path) -> None:
    """A segment path built for a start time parses back to that start time."""
    # Given a camera and a local start time
    camera = Camera(id="cam1", name="Front Door", address="rtsp://x")
    start = datetime(2024, 3, 10, 14, 5, 0).astimezone()

    # When building its path and parsing the relative filename
    path = segment_path(tmp_path, camera, start)
    filename = relative_filename(camera_dir(tmp_path, camera), path)

    # Then the layout is <camera>/<date>/<time>.mp4 and parsing recovers the start
    assert filename == "2024-03-10/14-05-00.mp4"
    assert path.parent.parent.name == "Front_Door"
    assert parse_segment_start(PurePosixPath(filename)) == start


def test_parse_legacy_flat_name() -> None:
    """Legacy flat names with a trailing suffix still parse."""
    parsed = parse_segment_start(PurePosixPath("20240310_140500_part.mp4"))

    assert parsed is not None
    assert parsed.replace(tzinfo=None) == datetime(2024, 3, 10, 14, 5, 0)
    assert parsed.tzinfo is not None


@pytest.mark.parametrize(
    "relative",
    [
        "2024-03-10/garbage.mp4",
        "notadate/14-05-00.mp4",
        "2024-13-40/14-05-00.mp4",
        "random.mp4",
        "20240310_140500.mkv",
        "a/b/c.mp4",
    ],
)
def test_parse_rejects_unrecognized_names(relative: str) -> None:
    """Names outside both conventions yield None instead of raising."""
    assert parse_segment_start(PurePosixPath(relative)) is None


def test_output_template_is_strftime_pattern(tmp_path: Path) -> None:
    """The capture process gets a strftime template under the camera dir."""
    camera = Camera(id="cam1", name="Front Door", address="rtsp://x")

    template = segment_output_template(tmp_path, camera)

    assert template == str(tmp_path / "Front_Door" / "%Y-%m-%d" / "%H-%M-%S.mp4")


def test_camera_dirs_include_legacy_dir_once(tmp_path: Path) -> None:
    """Both layouts are scanned, but identical dirs are not listed twice."""
    distinct = Camera(id="cam1", name="Front Door", address="rtsp://x")
    same = Camera(id="garage", name="garage", address="rtsp://x")

    assert camera_dirs(tmp_path, distinct) == [tmp_path / "Front_Door", tmp_path / "cam1"]
    assert camera_dirs(tmp_path, same) == [tmp_path / "garage"]


def test_aligned_segment_start_rounds_down() -> None:
    instant = datetime(2024, 3, 10, 14, 7, 31)

    assert aligned_segment_start(instant, 300) == datetime(2024, 3, 10, 14, 5, 0)


def test_aligned_segment_start_rejects_zero_length() -> None:
    with pytest.raises(ValueError):
        aligned_segment_start(datetime(2024, 3, 10), 0)
