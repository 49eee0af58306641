"""Filesystem helpers for segment files."""

from __future__ import annotations

import logging
from pathlib import Path

import anyio

from homenvr.errors import StorageFilesystemError

logger = logging.getLogger(__name__)


async def unlink_segment(path: str | Path) -> bool:
    """Delete a segment file.

    Returns True if a file was removed and False if it was already gone.
    A missing file is not an error: the inventory entry is stale either way.

    Raises:
        StorageFilesystemError: On any other filesystem failure.
    """
    target = anyio.Path(path)
    try:
        await target.unlink()
    except FileNotFoundError:
        logger.debug("Segment already gone: %s", path)
        return False
    except OSError as exc:
        raise StorageFilesystemError(str(path), "unlink", cause=exc) from exc
    return True


async def ensure_dir(path: str | Path) -> None:
    try:
        await anyio.Path(path).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageFilesystemError(str(path), "mkdir", cause=exc) from exc
