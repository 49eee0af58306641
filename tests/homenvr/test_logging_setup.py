"""Tests for logging setup module."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

import homenvr.logging_setup as logging_setup
from homenvr.logging_setup import configure_logging


@pytest.fixture(autouse=True)
def reset_logging_root() -> Iterator[None]:
    """Restore root logger handlers/levels after each test."""
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    original_defaults = dict(logging_setup._CONTEXT_DEFAULTS)

    yield

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in original_handlers:
        root.addHandler(handler)
    root.setLevel(original_level)
    logging.captureWarnings(False)
    logging_setup._CONTEXT_DEFAULTS.clear()
    logging_setup._CONTEXT_DEFAULTS.update(original_defaults)


def test_camera_name_comes_from_extra(capsys: pytest.CaptureFixture[str]) -> None:
    # Given logging configured for a node
    configure_logging(log_level="INFO", node_name="nvr-1")

    # When logging about one camera
    logging.getLogger("homenvr.test").info("segment closed", extra={"camera_name": "front"})

    # Then the camera tags the line
    out = capsys.readouterr().out
    assert "INFO [front]" in out
    assert "segment closed" in out


def test_node_name_is_default_context(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(log_level="INFO", node_name="nvr-1")

    logging.getLogger("homenvr.test").info("started")

    assert "[nvr-1]" in capsys.readouterr().out


def test_extra_fields_are_appended_as_json(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(log_level="INFO")

    logging.getLogger("homenvr.test").info(
        "sync done", extra={"segments_created": 2, "camera_name": "front"}
    )

    line = capsys.readouterr().out.strip()
    assert line.endswith('{"segments_created": 2}')


def test_level_filters_console(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(log_level="WARNING")

    logger = logging.getLogger("homenvr.test")
    logger.info("hidden")
    logger.warning("shown")

    out = capsys.readouterr().out
    assert "hidden" not in out
    assert "shown" in out


def test_log_file_receives_lines(tmp_path: Path) -> None:
    log_file = tmp_path / "homenvr.log"
    configure_logging(log_level="INFO", log_file=str(log_file))

    logging.getLogger("homenvr.test").error("disk full", extra={"camera_name": "yard"})
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "ERROR [yard]" in log_file.read_text()
    assert "disk full" in log_file.read_text()
