"""Command runner that fakes ffmpeg."""

from __future__ import annotations

from pathlib import Path

from homenvr.export.runner import CommandResult


class FakeRunner:
    """Returns scripted results in order; successful runs write the output file.

    A scripted exception is raised after a partial output has been written.

    The output path is the last argument, as in every ffmpeg command the
    exporter builds.
    """

    def __init__(self, results: list[CommandResult | BaseException] | None = None) -> None:
        self._results = list(results or [])
        self.commands: list[list[str]] = []
        self.concat_lists: list[str] = []

    async def run(self, cmd: list[str], *, timeout_s: float | None = None) -> CommandResult:
        self.commands.append(list(cmd))
        if "concat" in cmd:
            list_path = Path(cmd[cmd.index("-i") + 1])
            self.concat_lists.append(list_path.read_text())
        result = self._results.pop(0) if self._results else CommandResult(returncode=0)
        output = Path(cmd[-1])
        if isinstance(result, BaseException):
            # Killed mid-write.
            output.write_bytes(b"partial")
            raise result
        if result.ok:
            output.write_bytes(b"clip")
        else:
            # ffmpeg leaves a truncated file behind on failure.
            output.write_bytes(b"")
        return result
