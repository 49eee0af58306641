"""Camera registry backed by the loaded configuration."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from homenvr.interfaces import CameraRegistry
from homenvr.models.camera import Camera

logger = logging.getLogger(__name__)


class ConfigCameraRegistry(CameraRegistry):
    """In-memory registry seeded from the `cameras` config section.

    Enable/disable toggles live for the lifetime of the process; the config
    file itself is never rewritten.
    """

    def __init__(self, cameras: Iterable[Camera]) -> None:
        self._cameras: dict[str, Camera] = {camera.id: camera for camera in cameras}
        self._lock = asyncio.Lock()

    async def list_cameras(self) -> list[Camera]:
        return list(self._cameras.values())

    async def get_camera(self, camera_id: str) -> Camera | None:
        return self._cameras.get(camera_id)

    async def set_enabled(self, camera_id: str, enabled: bool) -> Camera | None:
        async with self._lock:
            camera = self._cameras.get(camera_id)
            if camera is None:
                return None
            updated = camera.model_copy(update={"enabled": enabled})
            self._cameras[camera_id] = updated
        logger.info(
            "Camera %s %s",
            camera_id,
            "enabled" if enabled else "disabled",
            extra={"camera_name": camera.name},
        )
        return updated
