"""Tests for CLI module."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml

from homenvr.cli import HomeNVR, main


def _write_config(tmp_path: Path) -> Path:
    data = {
        "version": 1,
        "cameras": [
            {"id": "front", "name": "Front Door", "address": "rtsp://10.0.0.5/stream"},
            {"id": "yard", "name": "Yard", "address": "rtsp://10.0.0.6/stream", "enabled": False},
        ],
        "storage": {
            "recordings_dir": str(tmp_path / "recordings"),
            "exports_dir": str(tmp_path / "exports"),
        },
        "state_store": {"dsn": f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"},
        "server": {"enabled": False},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


@pytest.fixture(autouse=True)
def no_logging_setup() -> Iterator[MagicMock]:
    with patch("homenvr.cli.configure_logging") as mock_configure:
        yield mock_configure


class TestValidate:
    def test_prints_summary(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        # Given: A valid config file
        path = _write_config(tmp_path)

        # When: Validating it
        HomeNVR().validate(str(path))

        # Then: A summary is printed
        out = capsys.readouterr().out
        assert "Config valid" in out
        assert "front (enabled=True)" in out
        assert "yard (enabled=False)" in out
        assert "clean above 80% down to 70%" in out

    def test_missing_file_exits_1(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            HomeNVR().validate(str(tmp_path / "missing.yaml"))

        assert exc_info.value.code == 1
        assert "Config invalid" in capsys.readouterr().err


class TestCommands:
    def test_sync_reports_counts(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        # Given: One segment on disk in the date-partitioned layout
        path = _write_config(tmp_path)
        segment = tmp_path / "recordings" / "Front_Door" / "2024-03-10" / "14-00-00.mp4"
        segment.parent.mkdir(parents=True)
        segment.write_bytes(b"\0" * 10)

        # When: Running a sync
        HomeNVR().sync(str(path))

        # Then: The segment is counted as created
        assert "created=1" in capsys.readouterr().out

    def test_gaps_on_empty_inventory(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        HomeNVR().gaps(str(_write_config(tmp_path)))

        assert "No gaps found" in capsys.readouterr().out

    def test_export_rejects_bad_timestamp(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            HomeNVR().export(str(_write_config(tmp_path)), "front", "yesterday", "today")

        assert exc_info.value.code == 2
        assert "Invalid timestamp" in capsys.readouterr().err

    def test_export_unknown_camera_exits_1(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            HomeNVR().export(
                str(_write_config(tmp_path)),
                "garage",
                "2024-03-10T14:00:00",
                "2024-03-10T14:00:10",
            )

        assert exc_info.value.code == 1
        assert "Export failed" in capsys.readouterr().err


def test_main_strips_lone_help(monkeypatch: pytest.MonkeyPatch) -> None:
    # Given: argv with only --help
    monkeypatch.setattr(sys, "argv", ["homenvr", "--help"])

    # When: Running main
    with patch("homenvr.cli.fire.Fire") as mock_fire:
        main()

    # Then: Fire sees no arguments
    assert sys.argv == ["homenvr"]
    mock_fire.assert_called_once_with(HomeNVR)
