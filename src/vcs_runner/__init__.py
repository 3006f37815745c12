"""vcs-runner - run version-control commands and stream their output as lines.

Environment variables:
    VCS_RUNNER_BUFFER_SIZE: Bytes per read (default 4096)
    VCS_RUNNER_ENCODING: Output/input codec (default utf-8)
    VCS_RUNNER_DEBUG: Let the child's stderr through (default false)
    VCS_RUNNER_LOG_DEBUG: Debug logging to a temp file (default false)

Usage:
    python -m vcs_runner -- git log --oneline
"""

__version__ = "0.1.0"

from .errors import NonZeroExit, ReadError, RunnerError, SpawnError, WriteError
from .runtime import (
    BeginEvent,
    EndEvent,
    RunMode,
    RunResult,
    RunState,
    Runner,
    UpdateEvent,
    run_lines,
)

__all__ = [
    "__version__",
    "BeginEvent",
    "EndEvent",
    "NonZeroExit",
    "ReadError",
    "RunMode",
    "RunResult",
    "RunState",
    "Runner",
    "RunnerError",
    "SpawnError",
    "UpdateEvent",
    "WriteError",
    "run_lines",
]
