"""Runner type definitions.

vcs-runner runtime v0.1.0

Run modes, run states and the collected result of a blocking run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..errors import NonZeroExit

__all__ = [
    "RunMode",
    "RunState",
    "RunResult",
]


class RunMode(str, Enum):
    """How a Runner schedules its I/O.

    - SYNCHRONOUS: run() blocks the calling thread until the run ends
    - ASYNCHRONOUS: run() schedules the I/O on the running event loop and
      returns right away
    """

    SYNCHRONOUS = "synchronous"
    ASYNCHRONOUS = "asynchronous"


class RunState(str, Enum):
    """Lifecycle of one run.

    idle -> spawning -> streaming -> draining -> exited, with failed and
    cancelled as the alternate terminal states.
    """

    IDLE = "idle"
    SPAWNING = "spawning"
    STREAMING = "streaming"
    DRAINING = "draining"
    EXITED = "exited"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.EXITED, RunState.FAILED, RunState.CANCELLED)


@dataclass
class RunResult:
    """Everything a blocking run produced.

    Attributes:
        lines: All delivered lines, in order
        exit_status: Child exit status (EXIT_FAILURE for failed/cancelled runs)
        state: Terminal state of the run
        error: The I/O error behind a failed run, if any
    """

    lines: list[str] = field(default_factory=list)
    exit_status: int = 0
    state: RunState = RunState.EXITED
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.state is RunState.EXITED and self.exit_status == 0

    def check(self) -> RunResult:
        """Raise if the run did not succeed, otherwise return self.

        Raises:
            WriteError/ReadError: For runs that failed at the I/O level
            NonZeroExit: For runs that completed with a non-zero status
        """
        if self.state is RunState.FAILED and self.error is not None:
            raise self.error
        if self.exit_status != 0:
            raise NonZeroExit(self.exit_status)
        return self
