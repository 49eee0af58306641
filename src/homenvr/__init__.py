"""HomeNVR recording engine."""

__version__ = "0.1.0"

# Export commonly used types
from homenvr.errors import NVRError
from homenvr.models.camera import Camera
from homenvr.models.recording import ActiveRecording, ExportResult, Recording
from homenvr.models.settings import Settings

__all__ = [
    "ActiveRecording",
    "Camera",
    "ExportResult",
    "NVRError",
    "Recording",
    "Settings",
    "__version__",
]
