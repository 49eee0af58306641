"""CLI entrypoint for HomeNVR."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

from dotenv import load_dotenv

load_dotenv()

import fire  # type: ignore[import-untyped]

from homenvr.app import Application
from homenvr.config import ConfigError, load_config
from homenvr.errors import CameraNotFoundError, ExportError
from homenvr.logging_setup import configure_logging

T = TypeVar("T")


def setup_logging(level: str = "INFO", node_name: str | None = None) -> None:
    """Configure logging for CLI."""
    configure_logging(log_level=level, node_name=node_name)


def _parse_datetime(value: str | datetime) -> datetime:
    """ISO 8601 timestamps; naive values are local time."""
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        print(f"✗ Invalid timestamp: {value!r} (expected ISO 8601)", file=sys.stderr)
        sys.exit(2)


async def _with_app(config_path: Path, fn: Callable[[Application], Awaitable[T]]) -> T:
    app = Application(config_path)
    try:
        await app.initialize()
        return await fn(app)
    finally:
        await app.shutdown()


class HomeNVR:
    """HomeNVR CLI - continuous segment recording for IP cameras."""

    def run(self, config: str, log_level: str = "INFO") -> None:
        """Record all enabled cameras until interrupted.

        Args:
            config: Path to YAML config file
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        setup_logging(log_level)
        app = Application(Path(config))
        try:
            asyncio.run(app.run())
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)
        except KeyboardInterrupt:
            pass  # Handled by signal handlers

    def validate(self, config: str) -> None:
        """Validate config file without running.

        Args:
            config: Path to YAML config file
        """
        config_path = Path(config)
        try:
            cfg = load_config(config_path)
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)

        print(f"✓ Config valid: {config_path}")
        cameras = [f"{camera.id} (enabled={camera.enabled})" for camera in cfg.cameras]
        print(f"  Cameras: {cameras}")
        print(f"  Recordings dir: {cfg.storage.recordings_dir}")
        print(f"  Exports dir: {cfg.storage.exports_dir}")
        print(f"  Segment length: {cfg.recorder.segment_seconds}s")
        print(
            "  Retention: clean above "
            f"{cfg.retention.clean_threshold_percent}% down to "
            f"{cfg.retention.target_threshold_percent}%"
        )
        print(f"  API server: {'enabled' if cfg.server.enabled else 'disabled'}")

    def sync(self, config: str, log_level: str = "INFO") -> None:
        """Reconcile the recording inventory with the recordings directory once.

        Args:
            config: Path to YAML config file
            log_level: Logging level
        """
        setup_logging(log_level)
        report = self._run(Path(config), lambda app: app.sync_recordings())
        print(
            f"✓ Synced {report.cameras} camera(s): scanned={report.scanned} "
            f"created={report.created} updated={report.updated} "
            f"anomalies={report.anomalies} errors={report.errors}"
        )

    def cleanup(self, config: str, log_level: str = "INFO") -> None:
        """Sync, then evict the oldest recordings if disk usage is above the ceiling.

        Args:
            config: Path to YAML config file
            log_level: Logging level
        """
        setup_logging(log_level)
        report = self._run(Path(config), lambda app: app.run_maintenance())
        retention = report.retention
        if retention is None:
            print("✗ Retention check failed; see log", file=sys.stderr)
            sys.exit(1)
        if not retention.triggered:
            print(
                f"✓ Usage {retention.usage_before:.1f}% is below {retention.ceiling}%; "
                "nothing to do"
            )
            return
        print(
            f"✓ Deleted {retention.deleted} recording(s), freed {retention.freed_bytes} bytes; "
            f"usage {retention.usage_before:.1f}% -> {retention.usage_after:.1f}%"
        )
        if retention.exhausted is not None:
            print(f"✗ {retention.exhausted}", file=sys.stderr)
            sys.exit(1)

    def export(
        self,
        config: str,
        camera_id: str,
        start: str,
        end: str,
        destination: str | None = None,
        log_level: str = "INFO",
    ) -> None:
        """Export a clip covering [start, end] of one camera.

        Args:
            config: Path to YAML config file
            camera_id: Camera id as configured
            start: ISO 8601 start time (naive values are local time)
            end: ISO 8601 end time
            destination: Directory or .mp4 path; defaults to the export holding area
            log_level: Logging level
        """
        setup_logging(log_level)
        start_dt = _parse_datetime(start)
        end_dt = _parse_datetime(end)
        try:
            result = self._run(
                Path(config),
                lambda app: app.export(camera_id, start_dt, end_dt, destination),
            )
        except (CameraNotFoundError, ExportError) as e:
            print(f"✗ Export failed: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"✓ Exported {result.path} ({result.mode}, {result.duration_s:.1f}s)")

    def gaps(
        self,
        config: str,
        camera_id: str | None = None,
        min_gap_s: float = 1.0,
        log_level: str = "WARNING",
    ) -> None:
        """Report holes in the recorded timeline.

        Args:
            config: Path to YAML config file
            camera_id: Optional camera id filter
            min_gap_s: Ignore gaps shorter than this many seconds
            log_level: Logging level
        """
        setup_logging(log_level)
        found = self._run(
            Path(config), lambda app: app.find_gaps(camera_id, min_gap_s=min_gap_s)
        )
        if not found:
            print("✓ No gaps found")
            return
        for gap in found:
            print(
                f"{gap.camera_id}: {gap.gap_s:.1f}s gap between "
                f"{gap.previous_filename} ({gap.gap_start.astimezone().isoformat()}) and "
                f"{gap.next_filename} ({gap.gap_end.astimezone().isoformat()})"
            )
        print(f"Found {len(found)} gap(s)")

    @staticmethod
    def _run(config_path: Path, fn: Callable[[Application], Awaitable[T]]) -> T:
        try:
            return asyncio.run(_with_app(config_path, fn))
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)


def main() -> None:
    """Main CLI entrypoint."""
    # Strip --help/-h when it's the only arg so Fire shows its commands list
    if len(sys.argv) == 2 and sys.argv[1] in ("--help", "-h"):
        sys.argv.pop()
    fire.Fire(HomeNVR)


if __name__ == "__main__":
    main()
