"""Runner exception classes.

vcs-runner v0.1.0
"""

from __future__ import annotations

__all__ = [
    "EXIT_FAILURE",
    "RunnerError",
    "SpawnError",
    "WriteError",
    "ReadError",
    "NonZeroExit",
]

# Exit status reported for runs that failed at the I/O level or were cancelled
EXIT_FAILURE = 1


class RunnerError(Exception):
    """Base exception for the runner."""
    pass


class SpawnError(RunnerError):
    """The child process could not be launched.

    Attributes:
        argv: Argument vector that was being spawned
    """

    def __init__(self, message: str, argv: list[str] | None = None) -> None:
        self.argv = list(argv) if argv else []
        super().__init__(message)


class WriteError(RunnerError):
    """Writing the supplied input to the child failed."""
    pass


class ReadError(RunnerError):
    """Reading the child's output failed."""
    pass


class NonZeroExit(RunnerError):
    """The child ran to completion but returned a non-success status.

    Attributes:
        exit_status: The status the child exited with
    """

    def __init__(self, exit_status: int) -> None:
        self.exit_status = exit_status
        super().__init__(f"process exited with status {exit_status}")
