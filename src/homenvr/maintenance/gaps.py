"""Report holes in the recorded timeline."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import timedelta
from itertools import groupby

from homenvr.models.recording import Recording, RecordingGap


def find_gaps(recordings: Iterable[Recording], min_gap_s: float = 1.0) -> list[RecordingGap]:
    """Gaps longer than `min_gap_s` between consecutive recordings of each camera.

    Recordings may arrive in any order; they are grouped by camera and sorted
    by start time. Overlapping segments never produce a gap.
    """
    threshold = timedelta(seconds=min_gap_s)
    ordered = sorted(recordings, key=lambda r: (r.camera_id, r.start_time))
    gaps: list[RecordingGap] = []
    for camera_id, group in groupby(ordered, key=lambda r: r.camera_id):
        previous: Recording | None = None
        for record in group:
            if previous is not None and record.start_time - previous.end_time > threshold:
                gaps.append(
                    RecordingGap(
                        camera_id=camera_id,
                        previous_filename=previous.filename,
                        next_filename=record.filename,
                        gap_start=previous.end_time,
                        gap_end=record.start_time,
                    )
                )
            if previous is None or record.end_time > previous.end_time:
                previous = record
    return gaps
