from homenvr.repository.recording_repository import RecordingRepository, local_day_bounds

__all__ = ["RecordingRepository", "local_day_bounds"]
