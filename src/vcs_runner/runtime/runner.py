"""Runner: spawn a command and stream its output as text lines.

vcs-runner runtime v0.1.0

One Runner drives at most one run at a time through the states
idle -> spawning -> streaming -> draining -> exited (or failed/cancelled).
The transition logic is shared; only the I/O driver differs by mode:

- SYNCHRONOUS: _drive_sync() does blocking reads on the calling thread
- ASYNCHRONOUS: _drive_async() runs as an asyncio task, waiting for pipe
  readiness inside an anyio.CancelScope, with one outstanding read at a time

Terminal transitions and notification delivery happen under a re-entrant
lock, so cancel() from another thread never interleaves with an update and
every run gets exactly one EndEvent.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import os
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Callable

import anyio
import anyio.to_thread

from ..config import get_config
from ..errors import EXIT_FAILURE, ReadError, RunnerError, SpawnError, WriteError
from .cancellation import CancellationToken
from .decoding import DecodedStream, TextFilter, make_text_filter
from .events import BeginEvent, EndEvent, EventCallback, RunnerEvent, UpdateEvent
from .process_handle import ProcessHandle, ProcessSpec
from .segmenter import LineEndings, LineSegmenter
from .types import RunMode, RunResult, RunState

__all__ = [
    "Runner",
    "RunContext",
    "run_lines",
]

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Per-run execution state.

    A new context is created for every run, so a run that is still
    unwinding after cancellation never touches the state of the next one.

    Attributes:
        run_id: Sequence number within the Runner
        token: Cancellation token of this run
        stream: Decoded view of the output source
        segmenter: Line segmenter holding the remainder
        handle: The child process (None for run_stream)
        input_bytes: Encoded input to write before reading
        state: Current state
        exit_status: Status reported in the EndEvent
        error: I/O error that failed the run
    """

    run_id: int
    token: CancellationToken
    stream: DecodedStream
    segmenter: LineSegmenter
    handle: ProcessHandle | None = None
    input_bytes: bytes | None = None
    state: RunState = RunState.SPAWNING
    exit_status: int = 0
    error: Exception | None = None
    lines_delivered: int = field(default=0, repr=False)


class Runner:
    """Runs external commands and delivers their output line by line.

    Example (synchronous):
        runner = Runner(4096, event_callback=print)
        if runner.run(["git", "log", "--oneline"], cwd=repo):
            print(runner.exit_status)

    Example (asynchronous, inside a running event loop):
        runner = Runner(4096, RunMode.ASYNCHRONOUS, event_callback=on_event)
        runner.run(["git", "status", "--porcelain"], cwd=repo)
        await runner.wait_finished()
    """

    def __init__(
        self,
        buffer_size: int | None = None,
        mode: RunMode | str = RunMode.SYNCHRONOUS,
        *,
        preserve_line_endings: bool = False,
        event_callback: EventCallback | None = None,
        encoding: str | None = None,
        text_filter_factory: Callable[[], TextFilter] | None = None,
        inherit_stderr: bool | None = None,
        term_timeout: float | None = None,
        kill_timeout: float | None = None,
    ) -> None:
        """Create a runner.

        Args:
            buffer_size: Bytes per read, must be > 0 (default from config)
            mode: SYNCHRONOUS or ASYNCHRONOUS, fixed for the runner's lifetime
            preserve_line_endings: Keep terminators in delivered lines
            event_callback: First subscriber for notifications
            encoding: Codec for output decoding and input encoding
            text_filter_factory: Builds the decoding filter for each run,
                overriding the codec-based default
            inherit_stderr: Let the child's stderr through (default from config)
            term_timeout: Grace period after SIGTERM when reaping
            kill_timeout: Grace period after SIGKILL when reaping

        Raises:
            ValueError: If buffer_size is not positive
        """
        config = get_config()

        if buffer_size is None:
            buffer_size = config.buffer_size
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")

        self._buffer_size = buffer_size
        self._mode = RunMode(mode)
        self._line_endings = (
            LineEndings.PRESERVE if preserve_line_endings else LineEndings.STRIP
        )
        self.encoding = encoding or config.encoding
        self._text_filter_factory = text_filter_factory or (
            lambda: make_text_filter(self.encoding)
        )
        self.inherit_stderr = config.debug if inherit_stderr is None else inherit_stderr
        self.term_timeout = config.term_timeout if term_timeout is None else term_timeout
        self.kill_timeout = config.kill_timeout if kill_timeout is None else kill_timeout

        self._callbacks: list[EventCallback] = []
        if event_callback is not None:
            self._callbacks.append(event_callback)

        self._environment: dict[str, str] | None = None
        self._lock = threading.RLock()
        self._ctx: RunContext | None = None
        self._last_error: Exception | None = None
        self._run_ids = itertools.count(1)
        self._tasks: set[asyncio.Task[None]] = set()

    # =========================================================================
    # Configuration and queries
    # =========================================================================

    @property
    def buffer_size(self) -> int:
        return self._buffer_size

    @property
    def mode(self) -> RunMode:
        return self._mode

    @property
    def preserve_line_endings(self) -> bool:
        return self._line_endings is LineEndings.PRESERVE

    @preserve_line_endings.setter
    def preserve_line_endings(self, value: bool) -> None:
        """Takes effect from the next chunk, including for an active run."""
        with self._lock:
            self._line_endings = LineEndings.PRESERVE if value else LineEndings.STRIP
            if self._ctx is not None:
                self._ctx.segmenter.policy = self._line_endings

    @property
    def state(self) -> RunState:
        ctx = self._ctx
        return ctx.state if ctx is not None else RunState.IDLE

    @property
    def is_running(self) -> bool:
        """True while the run's descriptors are live.

        A cancelled run stays running until its child has been reaped and
        its pipes closed, which can be after the EndEvent.
        """
        ctx = self._ctx
        return ctx is not None and not (ctx.state.is_terminal and ctx.stream.closed)

    @property
    def exit_status(self) -> int:
        """Exit status of the last run; meaningful once its EndEvent was sent."""
        ctx = self._ctx
        return ctx.exit_status if ctx is not None else 0

    @property
    def last_error(self) -> Exception | None:
        """Spawn, write or read error of the last run, if any."""
        return self._last_error

    @property
    def pid(self) -> int | None:
        ctx = self._ctx
        if ctx is None or ctx.handle is None or ctx.state.is_terminal:
            return None
        return ctx.handle.pid

    @property
    def environment(self) -> dict[str, str] | None:
        """Environment for future runs; None means inherit the caller's."""
        return dict(self._environment) if self._environment is not None else None

    def set_environment(self, environment: Mapping[str, str] | None) -> None:
        """Replace the full environment used by future runs."""
        self._environment = dict(environment) if environment is not None else None

    def add_environment(self, key: str, value: str) -> None:
        """Set one variable for future runs.

        The first call seeds the environment with a copy of os.environ.
        """
        if not key:
            raise ValueError("environment key must not be empty")
        if self._environment is None:
            self._environment = dict(os.environ)
        self._environment[key] = value

    # =========================================================================
    # Subscribers
    # =========================================================================

    def subscribe(self, callback: EventCallback) -> None:
        with self._lock:
            self._callbacks.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def _emit(self, event: RunnerEvent) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Error in runner callback for {event.kind.value}: {e}")

    # =========================================================================
    # Entry points
    # =========================================================================

    def run(
        self,
        argv: Sequence[str],
        cwd: str | os.PathLike[str] | None = None,
        input_text: str | None = None,
    ) -> bool:
        """Spawn argv and stream its output.

        Any active run is cancelled first. In SYNCHRONOUS mode this returns
        after the run has ended; in ASYNCHRONOUS mode it must be called from
        a running event loop and returns once the I/O has been scheduled.

        Args:
            argv: Command and arguments; argv[0] is looked up on PATH
            cwd: Working directory (None = current)
            input_text: Text written to the child's stdin; when None the
                child inherits the caller's stdin

        Returns:
            False if the child could not be spawned (see last_error),
            True otherwise. A non-zero exit is reported through exit_status.
        """
        loop = self._require_loop()
        self.cancel()

        spec = ProcessSpec(
            argv=list(argv),
            cwd=Path(cwd) if cwd is not None else None,
            env=self._environment,
            wants_stdin=input_text is not None,
            inherit_stderr=self.inherit_stderr,
        )

        try:
            input_bytes = (
                input_text.encode(self.encoding) if input_text is not None else None
            )
            text_filter = self._text_filter_factory()
            handle = ProcessHandle.spawn(
                spec,
                term_timeout=self.term_timeout,
                kill_timeout=self.kill_timeout,
            )
        except SpawnError as e:
            logger.warning(f"Could not start {spec.argv[:1]}: {e}")
            self._last_error = e
            self._ctx = None
            return False
        except (LookupError, ValueError) as e:
            logger.warning(f"Invalid run configuration: {e}")
            self._last_error = SpawnError(str(e), spec.argv)
            self._ctx = None
            return False

        stream = DecodedStream(handle.stdout, text_filter)
        return self._launch(loop, stream, handle, input_bytes)

    def run_stream(self, source: BinaryIO) -> bool:
        """Stream lines from an already-open binary source instead of a child.

        The source is closed when the run ends. In ASYNCHRONOUS mode it must
        be pollable (a pipe or socket). Exit status is 0 on a clean end of
        stream.
        """
        loop = self._require_loop()
        self.cancel()
        stream = DecodedStream(source, self._text_filter_factory())
        return self._launch(loop, stream, None, None)

    def cancel(self) -> None:
        """Abort the active run, if any. Idempotent and thread-safe.

        The child is sent SIGTERM, the remainder is discarded and
        EndEvent(cancelled=True) is delivered before this returns. The I/O
        driver notices at its next checkpoint and reaps the child.
        """
        with self._lock:
            ctx = self._ctx
            if ctx is None or ctx.state.is_terminal:
                return
            logger.debug(f"Cancelling run {ctx.run_id} in state {ctx.state.value}")
            ctx.token.cancel()
            self._finish(ctx, RunState.CANCELLED, EXIT_FAILURE)

    async def wait_finished(self) -> None:
        """Wait until every background task, including reaping, is done."""
        while True:
            pending = {task for task in self._tasks if not task.done()}
            if not pending:
                return
            await asyncio.wait(pending)

    def close(self) -> None:
        """Release the runner, cancelling any active run."""
        self.cancel()

    async def aclose(self) -> None:
        self.cancel()
        await self.wait_finished()

    def __enter__(self) -> Runner:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    async def __aenter__(self) -> Runner:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # =========================================================================
    # Shared state machine
    # =========================================================================

    def _require_loop(self) -> asyncio.AbstractEventLoop | None:
        if self._mode is RunMode.SYNCHRONOUS:
            return None
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            raise RunnerError(
                "asynchronous runner must be used from a running event loop"
            ) from None

    def _launch(
        self,
        loop: asyncio.AbstractEventLoop | None,
        stream: DecodedStream,
        handle: ProcessHandle | None,
        input_bytes: bytes | None,
    ) -> bool:
        ctx = RunContext(
            run_id=next(self._run_ids),
            token=CancellationToken(),
            stream=stream,
            segmenter=LineSegmenter(self._line_endings),
            handle=handle,
            input_bytes=input_bytes,
        )
        if handle is not None:
            # A blocked sync read() only returns once the child is gone
            ctx.token.add_callback(
                handle.terminate_with_deadline if loop is None else handle.terminate
            )

        with self._lock:
            self._ctx = ctx
            self._last_error = None
            ctx.state = RunState.STREAMING
            logger.debug(f"Run {ctx.run_id} started (mode={self._mode.value})")
            self._emit(BeginEvent(run_id=ctx.run_id))

        if loop is None:
            self._drive_sync(ctx)
        else:
            task = loop.create_task(self._drive_async(ctx))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return True

    def _on_chunk(self, ctx: RunContext, text: str | None) -> bool:
        """Segment one decoded chunk; None marks end of stream.

        Returns:
            True if the driver should issue another read
        """
        with self._lock:
            if ctx.state.is_terminal:
                return False

            if text is None:
                ctx.state = RunState.DRAINING
                lines = ctx.segmenter.flush()
            else:
                lines = ctx.segmenter.feed(text)

            if lines:
                ctx.lines_delivered += len(lines)
                self._emit(UpdateEvent(run_id=ctx.run_id, lines=lines))

            return ctx.state is RunState.STREAMING

    def _complete(self, ctx: RunContext, exit_status: int) -> None:
        if exit_status != 0:
            logger.info(f"Run {ctx.run_id} exited with status {exit_status}")
        self._finish(ctx, RunState.EXITED, exit_status)

    def _fail(self, ctx: RunContext, error: RunnerError) -> None:
        with self._lock:
            if ctx.state.is_terminal:
                return
            logger.warning(f"Run {ctx.run_id} failed: {error}")
            ctx.error = error
            if ctx is self._ctx:
                self._last_error = error
            self._finish(ctx, RunState.FAILED, EXIT_FAILURE)

    def _finish(self, ctx: RunContext, state: RunState, exit_status: int) -> None:
        with self._lock:
            if ctx.state.is_terminal:
                return
            ctx.state = state
            ctx.exit_status = exit_status
            ctx.segmenter.reset()
            logger.debug(
                f"Run {ctx.run_id} ended state={state.value} "
                f"exit_status={exit_status} lines={ctx.lines_delivered}"
            )
            self._emit(
                EndEvent(
                    run_id=ctx.run_id,
                    cancelled=state is RunState.CANCELLED,
                    exit_status=exit_status,
                    state=state,
                )
            )

    # =========================================================================
    # Drivers
    # =========================================================================

    def _drive_sync(self, ctx: RunContext) -> None:
        try:
            if ctx.input_bytes is not None and ctx.handle is not None:
                try:
                    ctx.handle.write_input(ctx.input_bytes)
                except OSError as e:
                    self._fail(ctx, WriteError(f"writing input failed: {e}"))
                    return

            while not ctx.token.cancelled:
                try:
                    text = ctx.stream.read(self._buffer_size)
                except (OSError, ValueError) as e:
                    self._fail(ctx, ReadError(f"reading output failed: {e}"))
                    return
                if not self._on_chunk(ctx, text):
                    break

            if ctx.state is RunState.DRAINING:
                status = ctx.handle.wait() if ctx.handle is not None else 0
                self._complete(ctx, status)
        finally:
            # Reached with a live run only when unwinding from an exception
            # such as KeyboardInterrupt
            if not ctx.state.is_terminal:
                ctx.token.cancel()
                self._finish(ctx, RunState.CANCELLED, EXIT_FAILURE)
            self._cleanup(ctx)

    async def _drive_async(self, ctx: RunContext) -> None:
        try:
            with anyio.CancelScope() as scope:
                ctx.token.bind(scope)
                try:
                    await self._stream_async(ctx)
                finally:
                    ctx.token.unbind()
        finally:
            if not ctx.state.is_terminal:
                ctx.token.cancel()
                self._finish(ctx, RunState.CANCELLED, EXIT_FAILURE)
            with anyio.CancelScope(shield=True):
                await anyio.to_thread.run_sync(self._cleanup, ctx)

    async def _stream_async(self, ctx: RunContext) -> None:
        if ctx.input_bytes is not None and ctx.handle is not None:
            try:
                await ctx.handle.write_input_async(ctx.input_bytes)
            except OSError as e:
                self._fail(ctx, WriteError(f"writing input failed: {e}"))
                return

        while True:
            try:
                text = await ctx.stream.read_async(self._buffer_size)
            except (OSError, ValueError) as e:
                self._fail(ctx, ReadError(f"reading output failed: {e}"))
                return
            if not self._on_chunk(ctx, text):
                break

        if ctx.state is RunState.DRAINING:
            status = await ctx.handle.wait_async() if ctx.handle is not None else 0
            self._complete(ctx, status)

    def _cleanup(self, ctx: RunContext) -> None:
        """Reap the child and close descriptors. Blocking."""
        if ctx.handle is not None:
            ctx.handle.reap()
            ctx.handle.close()
        ctx.stream.close()


def run_lines(
    argv: Sequence[str],
    cwd: str | os.PathLike[str] | None = None,
    input_text: str | None = None,
    *,
    preserve_line_endings: bool = False,
    buffer_size: int | None = None,
    env: Mapping[str, str] | None = None,
) -> RunResult:
    """Run a command to completion and collect every line.

    This is a convenience function for cases where streaming is not needed.

    Raises:
        SpawnError: If the command could not be started
    """
    lines: list[str] = []

    def collect(event: RunnerEvent) -> None:
        if isinstance(event, UpdateEvent):
            lines.extend(event.lines)

    with Runner(
        buffer_size,
        RunMode.SYNCHRONOUS,
        preserve_line_endings=preserve_line_endings,
        event_callback=collect,
    ) as runner:
        if env is not None:
            runner.set_environment(env)
        if not runner.run(argv, cwd, input_text):
            error = runner.last_error
            raise error if error is not None else SpawnError("spawn failed", list(argv))

        return RunResult(
            lines=lines,
            exit_status=runner.exit_status,
            state=runner.state,
            error=runner.last_error,
        )
