"""Runs the external transcoding tool."""

from __future__ import annotations

import asyncio
import logging
import subprocess
from dataclasses import dataclass
from typing import Protocol

from homenvr.errors import ProcessSpawnError
from homenvr.recording.utils import _format_cmd

logger = logging.getLogger(__name__)

_STDERR_TAIL_BYTES = 4000


@dataclass(frozen=True, slots=True)
class CommandResult:
    returncode: int
    stderr_tail: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    async def run(self, cmd: list[str], *, timeout_s: float | None = None) -> CommandResult: ...


class SubprocessRunner:
    """Runs a command to completion, keeping only the tail of its stderr."""

    async def run(self, cmd: list[str], *, timeout_s: float | None = None) -> CommandResult:
        logger.debug("Running: %s", _format_cmd(cmd))
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise ProcessSpawnError(cmd[0], cause=exc) from exc

        try:
            _stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout_s)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        tail = (stderr or b"")[-_STDERR_TAIL_BYTES:].decode(errors="replace")
        returncode = process.returncode if process.returncode is not None else -1
        return CommandResult(returncode=returncode, stderr_tail=tail)
