"""Clip exporter: cut an absolute time range out of recorded segments."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path

import anyio

from homenvr.errors import (
    ExportFailedError,
    ExportRangeInvalidError,
    ExportRangeNotFoundError,
)
from homenvr.export.runner import CommandResult, CommandRunner, SubprocessRunner
from homenvr.models.config import ExportConfig
from homenvr.models.enums import ExportMode
from homenvr.models.recording import ExportEntry, ExportResult, Recording
from homenvr.naming import SEGMENT_SUFFIX
from homenvr.repository import RecordingRepository

logger = logging.getLogger(__name__)

# Segments closer than this are treated as one continuous timeline.
_CONTIGUITY_SLACK = timedelta(seconds=2)


def compute_clip_window(
    segment_start: datetime, start: datetime, end: datetime
) -> tuple[float, float]:
    """Return (offset, duration) in seconds for cutting [start, end] out of a
    timeline beginning at `segment_start`."""
    offset = max(0.0, (start - segment_start).total_seconds())
    duration = (end - start).total_seconds()
    return offset, duration


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.astimezone()
    return value


def _timestamp_filename(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(UTC)).isoformat().replace(":", "-").replace(".", "-")
    return f"clip_{stamp}{SEGMENT_SUFFIX}"


def _holding_filename() -> str:
    return f"clip_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}{SEGMENT_SUFFIX}"


class ClipExporter:
    def __init__(
        self,
        *,
        repository: RecordingRepository,
        exports_dir: Path,
        config: ExportConfig | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        self._repo = repository
        self._exports_dir = exports_dir
        self._config = config or ExportConfig()
        self._runner = runner or SubprocessRunner()

    @property
    def exports_dir(self) -> Path:
        return self._exports_dir

    async def export(
        self,
        camera_id: str,
        start: datetime,
        end: datetime,
        destination: str | Path | None = None,
    ) -> ExportResult:
        """Export [start, end] of `camera_id` to `destination` or the holding area.

        Naive datetimes are interpreted in local time.

        Raises:
            ExportRangeInvalidError: end is not after start
            ExportRangeNotFoundError: no recording covers start
            ExportFailedError: both copy and re-encode failed
        """
        start = _as_aware(start)
        end = _as_aware(end)
        if end <= start:
            raise ExportRangeInvalidError(camera_id, start, end)

        anchor = await self._repo.find_covering(
            camera_id, start, tolerance_s=self._config.match_tolerance_s
        )
        if anchor is None:
            raise ExportRangeNotFoundError(camera_id, start)

        segments = await self._collect_segments(camera_id, anchor, end)
        offset, duration = compute_clip_window(anchor.start_time, start, end)
        output, is_internal = await self._resolve_output(destination)

        concat_list: anyio.Path | None = None
        try:
            if len(segments) > 1:
                concat_list = await self._write_concat_list(segments)
                input_args = ["-f", "concat", "-safe", "0", "-i", str(concat_list)]
            else:
                input_args = ["-i", anchor.path]

            mode = await self._run_with_fallback(camera_id, input_args, offset, duration, output)
        finally:
            if concat_list is not None:
                await _unlink_quietly(concat_list)

        logger.info(
            "Exported clip %s (mode=%s offset=%.1fs duration=%.1fs segments=%d)",
            output.name,
            mode,
            offset,
            duration,
            len(segments),
            extra={"camera_name": camera_id},
        )
        return ExportResult(
            path=output,
            filename=output.name,
            is_internal=is_internal,
            mode=mode,
            offset_s=offset,
            duration_s=duration,
            segments=[segment.filename for segment in segments],
        )

    async def _collect_segments(
        self, camera_id: str, anchor: Recording, end: datetime
    ) -> list[Recording]:
        """The anchor plus contiguous follow-up segments reaching towards `end`."""
        if anchor.end_time >= end:
            return [anchor]
        candidates = await self._repo.list_overlapping(camera_id, anchor.start_time, end)
        segments = [anchor]
        for record in candidates:
            if record.start_time <= segments[-1].start_time:
                continue
            if record.start_time > segments[-1].end_time + _CONTIGUITY_SLACK:
                break
            segments.append(record)
            if record.end_time >= end:
                break
        return segments

    async def _write_concat_list(self, segments: list[Recording]) -> anyio.Path:
        await anyio.Path(self._exports_dir).mkdir(parents=True, exist_ok=True)
        list_path = anyio.Path(self._exports_dir) / f".concat_{uuid.uuid4().hex}.txt"
        lines = []
        for segment in segments:
            escaped = segment.path.replace("'", "'\\''")
            lines.append(f"file '{escaped}'\n")
        await list_path.write_text("".join(lines))
        return list_path

    async def _resolve_output(self, destination: str | Path | None) -> tuple[Path, bool]:
        if destination is None:
            await self.sweep_holding_area()
            await anyio.Path(self._exports_dir).mkdir(parents=True, exist_ok=True)
            return self._exports_dir / _holding_filename(), True

        target = Path(destination).expanduser()
        if await anyio.Path(target).is_dir() or not target.suffix:
            await anyio.Path(target).mkdir(parents=True, exist_ok=True)
            return target / _timestamp_filename(), False
        await anyio.Path(target.parent).mkdir(parents=True, exist_ok=True)
        return target, False

    async def _run_with_fallback(
        self,
        camera_id: str,
        input_args: list[str],
        offset: float,
        duration: float,
        output: Path,
    ) -> ExportMode:
        last: CommandResult | None = None
        for mode in (ExportMode.COPY, ExportMode.REENCODE):
            cmd = self._build_command(mode, input_args, offset, duration, output)
            try:
                last = await self._runner.run(cmd, timeout_s=self._config.timeout_s)
            except asyncio.TimeoutError:
                await _unlink_quietly(anyio.Path(output))
                logger.warning(
                    "Export attempt timed out after %ss (mode=%s)",
                    self._config.timeout_s,
                    mode,
                    extra={"camera_name": camera_id},
                )
                last = CommandResult(
                    returncode=-1, stderr_tail=f"timed out after {self._config.timeout_s}s"
                )
                continue
            except BaseException:
                await _unlink_quietly(anyio.Path(output))
                raise
            if last.ok and await _has_content(output):
                return mode
            await _unlink_quietly(anyio.Path(output))
            logger.warning(
                "Export attempt failed (mode=%s, exit code: %s)",
                mode,
                last.returncode,
                extra={"camera_name": camera_id},
            )
            if last.stderr_tail:
                logger.debug("Export stderr tail (%s):\n%s", mode, last.stderr_tail)

        raise ExportFailedError(
            camera_id,
            last.returncode if last is not None else None,
            last.stderr_tail if last is not None else "",
        )

    def _build_command(
        self,
        mode: ExportMode,
        input_args: list[str],
        offset: float,
        duration: float,
        output: Path,
    ) -> list[str]:
        cmd = [self._config.ffmpeg_path, "-hide_banner", "-loglevel", "error"]
        cmd.extend(["-ss", f"{offset:.3f}"])
        cmd.extend(input_args)
        cmd.extend(["-t", f"{duration:.3f}"])
        if mode == ExportMode.COPY:
            cmd.extend(["-c:v", "copy", "-c:a", "copy"])
        else:
            cmd.extend(
                [
                    "-c:v",
                    self._config.reencode_video_codec,
                    "-preset",
                    self._config.reencode_preset,
                    "-c:a",
                    self._config.reencode_audio_codec,
                ]
            )
        cmd.extend(["-y", str(output)])
        return cmd

    # -------------------------------------------------------------------------
    # Holding area
    # -------------------------------------------------------------------------

    async def sweep_holding_area(self, now: float | None = None) -> int:
        """Delete holding-area clips older than the TTL. Returns how many went."""
        cutoff = (now if now is not None else time.time()) - self._config.holding_ttl_s
        removed = 0
        for entry, mtime in await self._holding_entries():
            if mtime >= cutoff:
                continue
            if await _unlink_quietly(entry):
                removed += 1
        if removed:
            logger.info("Removed %d expired exports", removed)
        return removed

    async def list_exports(self) -> list[ExportEntry]:
        """Holding-area clips, newest first."""
        items: list[ExportEntry] = []
        for entry, mtime in await self._holding_entries():
            try:
                size = (await entry.stat()).st_size
            except FileNotFoundError:
                continue
            items.append(
                ExportEntry(
                    filename=entry.name,
                    size=size,
                    created_at=datetime.fromtimestamp(mtime, UTC),
                )
            )
        items.sort(key=lambda item: item.created_at, reverse=True)
        return items

    def holding_path(self, filename: str) -> Path | None:
        """Resolve a holding-area filename, rejecting anything outside it."""
        if not filename or filename != Path(filename).name or filename.startswith("."):
            return None
        return self._exports_dir / filename

    async def _holding_entries(self) -> list[tuple[anyio.Path, float]]:
        root = anyio.Path(self._exports_dir)
        entries: list[tuple[anyio.Path, float]] = []
        try:
            async for entry in root.iterdir():
                if not entry.name.lower().endswith(SEGMENT_SUFFIX):
                    continue
                try:
                    entries.append((entry, (await entry.stat()).st_mtime))
                except FileNotFoundError:
                    continue
        except FileNotFoundError:
            return []
        return entries


async def _has_content(path: Path) -> bool:
    try:
        return (await anyio.Path(path).stat()).st_size > 0
    except FileNotFoundError:
        return False


async def _unlink_quietly(path: anyio.Path) -> bool:
    try:
        await path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        logger.warning("Failed to remove %s: %s", path, exc)
        return False
    return True
