"""Capture process lifecycle events delivered to the supervisor control loop."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from homenvr.models.enums import ProcessEventKind


class ProcessEvent(BaseModel):
    """Base class for capture process events."""

    camera_id: str
    generation: int
    timestamp: datetime
    kind: str


class ProcessExited(ProcessEvent):
    """Process exited on its own with a return code."""

    kind: Literal[ProcessEventKind.EXITED] = ProcessEventKind.EXITED
    code: int


class ProcessKilled(ProcessEvent):
    """Process was terminated by a signal."""

    kind: Literal[ProcessEventKind.KILLED] = ProcessEventKind.KILLED
    signal: int


class ProcessSpawnFailed(ProcessEvent):
    """Process could not be started at all."""

    kind: Literal[ProcessEventKind.SPAWN_FAILED] = ProcessEventKind.SPAWN_FAILED
    reason: str


CaptureProcessEvent = Annotated[
    ProcessExited | ProcessKilled | ProcessSpawnFailed,
    Field(discriminator="kind"),
]
