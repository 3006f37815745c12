"""Runner notification models.

vcs-runner runtime v0.1.0

Every run produces, in order:
1. exactly one BeginEvent
2. zero or more UpdateEvent, one per non-empty line batch
3. exactly one EndEvent
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .types import RunState

__all__ = [
    "EventKind",
    "RunnerEventBase",
    "BeginEvent",
    "UpdateEvent",
    "EndEvent",
    "RunnerEvent",
    "EventCallback",
]


class EventKind(str, Enum):
    BEGIN = "begin"
    UPDATE = "update"
    END = "end"


class RunnerEventBase(BaseModel):
    """Base of all runner notifications.

    Attributes:
        run_id: Sequence number of the run within its Runner
        timestamp: Unix timestamp (seconds)
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    run_id: int
    timestamp: float = Field(default_factory=time.time)


class BeginEvent(RunnerEventBase):
    """A run has started; sent before any I/O."""

    kind: Literal[EventKind.BEGIN] = EventKind.BEGIN


class UpdateEvent(RunnerEventBase):
    """A batch of complete lines, in output order."""

    kind: Literal[EventKind.UPDATE] = EventKind.UPDATE
    lines: list[str]


class EndEvent(RunnerEventBase):
    """A run has reached a terminal state.

    Attributes:
        cancelled: True when the run was aborted by cancel()
        exit_status: Child exit status, or EXIT_FAILURE for failed/cancelled runs
        state: The terminal state
    """

    kind: Literal[EventKind.END] = EventKind.END
    cancelled: bool = False
    exit_status: int = 0
    state: RunState = RunState.EXITED


RunnerEvent = Union[BeginEvent, UpdateEvent, EndEvent]

# Callback type for runner subscribers
EventCallback = Callable[[RunnerEvent], None]
