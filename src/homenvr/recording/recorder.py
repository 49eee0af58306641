"""Capture process spawning.

One long-lived ffmpeg per camera pulls the stream and lets ffmpeg's segment
muxer cut wall-clock aligned files into the date-partitioned layout.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import subprocess
from pathlib import Path
from typing import Protocol

from homenvr.config.loader import resolve_env_var
from homenvr.errors import ProcessSpawnError
from homenvr.models.camera import Camera
from homenvr.models.config import RecorderConfig
from homenvr.naming import sanitize_camera_name
from homenvr.recording.utils import (
    _format_cmd,
    _inject_credentials,
    _redact_cmd,
    _signal_process_group,
)

logger = logging.getLogger(__name__)

# Fragmented MP4 so segments still being written are playable and
# their size/mtime grow steadily.
_SEGMENT_MOVFLAGS = "movflags=frag_keyframe+empty_moov+default_base_moof"


class CaptureProcess(Protocol):
    @property
    def pid(self) -> int | None: ...

    @property
    def returncode(self) -> int | None: ...

    async def wait(self) -> int: ...

    def send_signal(self, sig: int) -> None: ...


class SegmentRecorder(Protocol):
    async def spawn(self, camera: Camera, output_template: str) -> CaptureProcess: ...


class FfmpegCaptureProcess:
    """asyncio subprocess wrapper that signals the whole process group."""

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self._process = process

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    async def wait(self) -> int:
        return await self._process.wait()

    def send_signal(self, sig: int) -> None:
        if self._process.returncode is not None:
            return
        if not _signal_process_group(self._process.pid, sig):
            try:
                self._process.send_signal(sig)
            except ProcessLookupError:
                return


def build_input_url(camera: Camera, template: str | None = None) -> str:
    """Stream URL for a camera, with credentials resolved from the environment."""
    if template:
        url = template.format(
            camera_id=camera.id,
            name=camera.name,
            safe_name=sanitize_camera_name(camera.name),
        )
    else:
        url = camera.address
    if camera.username:
        password = resolve_env_var(camera.password_env) if camera.password_env else None
        url = _inject_credentials(url, camera.username, password)
    return url


def build_segment_command(
    *,
    ffmpeg_path: str,
    input_url: str,
    output_template: str,
    segment_seconds: int,
    rtsp_transport: str = "tcp",
    ffmpeg_flags: list[str] | None = None,
) -> list[str]:
    user_flags = list(ffmpeg_flags or [])
    cmd = [ffmpeg_path, "-hide_banner"]
    if "-loglevel" not in user_flags:
        cmd.extend(["-loglevel", "warning"])
    if input_url.lower().startswith("rtsp"):
        cmd.extend(["-rtsp_transport", rtsp_transport])
    cmd.extend(["-i", input_url])
    cmd.extend(
        [
            "-c:v",
            "copy",
            "-c:a",
            "aac",
            "-ac",
            "2",
            "-ar",
            "44100",
            "-af",
            "aresample=async=1",
            "-f",
            "segment",
            "-segment_time",
            str(segment_seconds),
            "-segment_atclocktime",
            "1",
            "-segment_format",
            "mp4",
            "-segment_format_options",
            _SEGMENT_MOVFLAGS,
            "-reset_timestamps",
            "1",
            "-strftime",
            "1",
            "-strftime_mkdir",
            "1",
        ]
    )
    # User flags go last so they can override the defaults above.
    cmd.extend(user_flags)
    cmd.append(output_template)
    return cmd


class FfmpegSegmentRecorder:
    def __init__(self, config: RecorderConfig) -> None:
        self._config = config

    async def spawn(self, camera: Camera, output_template: str) -> CaptureProcess:
        input_url = build_input_url(camera, self._config.input_url_template)
        cmd = build_segment_command(
            ffmpeg_path=self._config.ffmpeg_path,
            input_url=input_url,
            output_template=output_template,
            segment_seconds=self._config.segment_seconds,
            rtsp_transport=self._config.rtsp_transport,
            ffmpeg_flags=self._config.ffmpeg_flags,
        )
        logger.debug(
            "Capture ffmpeg: %s",
            _format_cmd(_redact_cmd(cmd)),
            extra={"camera_name": camera.name},
        )

        stderr_log = self._stderr_log_path(camera)
        try:
            if stderr_log is None:
                process = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                )
            else:
                stderr_log.parent.mkdir(parents=True, exist_ok=True)
                with open(stderr_log, "ab") as stderr_file:
                    process = await asyncio.create_subprocess_exec(
                        *cmd,
                        stdin=subprocess.DEVNULL,
                        stdout=subprocess.DEVNULL,
                        stderr=stderr_file,
                        start_new_session=True,
                    )
        except OSError as exc:
            raise ProcessSpawnError(self._config.ffmpeg_path, cause=exc) from exc

        logger.info(
            "Capture process started (PID: %s)",
            process.pid,
            extra={"camera_name": camera.name},
        )
        if stderr_log is not None:
            logger.debug("Capture stderr at: %s", stderr_log, extra={"camera_name": camera.name})
        return FfmpegCaptureProcess(process)

    def _stderr_log_path(self, camera: Camera) -> Path | None:
        log_dir = self._config.stderr_log_dir
        if log_dir is None:
            return None
        return log_dir / f"{sanitize_camera_name(camera.name)}.log"


def terminate(process: CaptureProcess) -> None:
    """Ask a capture process to finish its current segment and exit."""
    process.send_signal(signal.SIGTERM)


def kill(process: CaptureProcess) -> None:
    process.send_signal(signal.SIGKILL)
