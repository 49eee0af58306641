"""Tests for timeline gap detection."""

from datetime import UTC, datetime, timedelta

from homenvr.maintenance.gaps import find_gaps
from homenvr.models.recording import Recording

T0 = datetime(2024, 3, 10, 14, 0, tzinfo=UTC)


def _rec(camera_id: str, start_s: int, duration_s: int = 300) -> Recording:
    start = T0 + timedelta(seconds=start_s)
    return Recording(
        camera_id=camera_id,
        filename=f"{camera_id}-{start_s}.mp4",
        path=f"/rec/{camera_id}-{start_s}.mp4",
        start_time=start,
        end_time=start + timedelta(seconds=duration_s),
    )


def test_contiguous_segments_have_no_gaps() -> None:
    records = [_rec("front", 0), _rec("front", 300), _rec("front", 600)]

    assert find_gaps(records) == []


def test_gap_between_segments_is_reported() -> None:
    # Given a 100s hole after the first segment
    records = [_rec("front", 400), _rec("front", 0)]

    # When looking for gaps
    (gap,) = find_gaps(records)

    # Then it spans the hole
    assert gap.camera_id == "front"
    assert gap.previous_filename == "front-0.mp4"
    assert gap.next_filename == "front-400.mp4"
    assert gap.gap_start == T0 + timedelta(seconds=300)
    assert gap.gap_end == T0 + timedelta(seconds=400)
    assert gap.gap_s == 100.0


def test_short_gaps_below_threshold_are_ignored() -> None:
    records = [_rec("front", 0), _rec("front", 301)]

    assert find_gaps(records, min_gap_s=1.0) == []
    assert len(find_gaps(records, min_gap_s=0.5)) == 1


def test_cameras_are_checked_independently() -> None:
    records = [_rec("front", 0), _rec("yard", 600), _rec("front", 300)]

    assert find_gaps(records) == []


def test_overlapping_segment_does_not_hide_later_gap() -> None:
    """A short segment inside a long one must not shift the timeline end back."""
    records = [_rec("front", 0, duration_s=600), _rec("front", 100, 50), _rec("front", 700)]

    (gap,) = find_gaps(records)

    assert gap.gap_start == T0 + timedelta(seconds=600)
    assert gap.previous_filename == "front-0.mp4"
