"""Runtime module for subprocess execution and line streaming.

This module provides isolated process execution with reliable termination,
incremental decoding of the child's output and line segmentation, driven
either synchronously or on an asyncio event loop.
"""

from __future__ import annotations

from .cancellation import CancellationToken
from .decoding import DecodedStream, TextFilter, make_text_filter
from .events import BeginEvent, EndEvent, EventCallback, RunnerEvent, UpdateEvent
from .process_handle import ProcessHandle, ProcessSpec
from .runner import Runner, run_lines
from .segmenter import LineEndings, LineSegmenter, split_lines
from .types import RunMode, RunResult, RunState

__all__ = [
    "BeginEvent",
    "CancellationToken",
    "DecodedStream",
    "EndEvent",
    "EventCallback",
    "LineEndings",
    "LineSegmenter",
    "ProcessHandle",
    "ProcessSpec",
    "RunMode",
    "RunResult",
    "RunState",
    "Runner",
    "RunnerEvent",
    "TextFilter",
    "UpdateEvent",
    "make_text_filter",
    "run_lines",
    "split_lines",
]
