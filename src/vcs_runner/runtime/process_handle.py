"""Child process handle with isolation and reliable termination.

vcs-runner runtime v0.1.0

This module provides:
- Spawning with stdout on a pipe and, on request, stdin on a pipe
- Cross-platform subprocess isolation (new session/process group)
- Reliable termination with graceful shutdown (SIGTERM -> timeout -> SIGKILL)
- Exit status capture, blocking or on a worker thread

Key design points:
- POSIX: start_new_session=True to create new process group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- Termination targets the process group, not just the main process
- Spawning is synchronous so a launch failure is known before any I/O
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

import anyio
import anyio.to_thread

from ..config import DEFAULT_KILL_TIMEOUT, DEFAULT_TERM_TIMEOUT
from ..errors import SpawnError

__all__ = [
    "ProcessHandle",
    "ProcessSpec",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a child process.

    Attributes:
        argv: Command line arguments (first element is resolved via PATH)
        cwd: Working directory for the process (None = caller's)
        env: Environment variables (None = inherit parent)
        wants_stdin: Connect stdin to a pipe; otherwise stdin is inherited
        inherit_stderr: Let stderr through; otherwise it goes to /dev/null
    """

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    wants_stdin: bool = False
    inherit_stderr: bool = False


class ProcessHandle:
    """Owns one spawned child and its pipes.

    Example:
        handle = ProcessHandle.spawn(ProcessSpec(argv=["git", "log"]))
        data = handle.stdout.read(4096)
        status = handle.wait()
        handle.close()
    """

    def __init__(
        self,
        process: subprocess.Popen[bytes],
        term_timeout: float = DEFAULT_TERM_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ) -> None:
        self._process = process
        self.term_timeout = term_timeout
        self.kill_timeout = kill_timeout
        self._kill_timer: threading.Timer | None = None
        self._kill_timer_lock = threading.Lock()

    @classmethod
    def spawn(
        cls,
        spec: ProcessSpec,
        *,
        term_timeout: float = DEFAULT_TERM_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ) -> ProcessHandle:
        """Launch the child described by spec.

        Raises:
            SpawnError: If argv is empty, the executable cannot be found,
                or the OS refuses to start the process
        """
        if not spec.argv:
            raise SpawnError("cannot spawn an empty argument vector")

        kwargs = _build_subprocess_kwargs(spec)

        try:
            # bufsize=0 gives raw pipe objects, so a read returns whatever
            # the child has written so far instead of waiting to fill a buffer
            process = subprocess.Popen(
                list(spec.argv),
                stdin=subprocess.PIPE if spec.wants_stdin else None,
                stdout=subprocess.PIPE,
                stderr=None if spec.inherit_stderr else subprocess.DEVNULL,
                cwd=spec.cwd,
                bufsize=0,
                **kwargs,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.debug(f"Failed to spawn argv={spec.argv[0]}: {e}")
            raise SpawnError(f"failed to spawn {spec.argv[0]!r}: {e}", spec.argv) from e

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={spec.argv[0]} cwd={spec.cwd}"
        )
        return cls(process, term_timeout=term_timeout, kill_timeout=kill_timeout)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def stdin(self) -> IO[bytes] | None:
        """Writable sink connected to the child's stdin, if requested."""
        return self._process.stdin

    @property
    def stdout(self) -> IO[bytes]:
        """Readable source connected to the child's stdout."""
        assert self._process.stdout is not None
        return self._process.stdout

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    def is_alive(self) -> bool:
        return self._process.poll() is None

    def write_input(self, data: bytes) -> None:
        """Write all of data to the child's stdin, then close it.

        Raises:
            OSError: If the pipe is missing or the write fails
        """
        sink = self._process.stdin
        if sink is None:
            raise BrokenPipeError("child was spawned without a stdin pipe")
        try:
            view = memoryview(data)
            while view:
                written = sink.write(view)
                view = view[written or 0:]
        finally:
            self.close_stdin()

    async def write_input_async(self, data: bytes) -> None:
        """Non-blocking counterpart of write_input().

        Each partial write waits for the pipe to become writable, which is
        where cancellation is observed.
        """
        sink = self._process.stdin
        if sink is None:
            raise BrokenPipeError("child was spawned without a stdin pipe")

        fd = sink.fileno()
        os.set_blocking(fd, False)
        try:
            view = memoryview(data)
            while view:
                await anyio.wait_writable(fd)
                try:
                    written = os.write(fd, view)
                except BlockingIOError:
                    continue
                view = view[written:]
        finally:
            self.close_stdin()

    def close_stdin(self) -> None:
        sink = self._process.stdin
        if sink is not None and not sink.closed:
            try:
                sink.close()
            except OSError as e:
                logger.debug(f"Error closing stdin pid={self.pid}: {e}")

    def wait(self, timeout: float | None = None) -> int:
        """Block until the child exits and return its exit status.

        Raises:
            subprocess.TimeoutExpired: If timeout elapses first
        """
        status = self._process.wait(timeout=timeout)
        logger.debug(f"Subprocess completed pid={self.pid} returncode={status}")
        return status

    async def wait_async(self) -> int:
        """Wait for exit on a worker thread so the event loop keeps running."""
        return await anyio.to_thread.run_sync(self.wait, abandon_on_cancel=True)

    def terminate(self) -> None:
        """Send SIGTERM (CTRL_BREAK_EVENT on Windows) to the child's group.

        No-op when the child has already exited.
        """
        if not self.is_alive():
            return
        logger.debug(f"Terminating subprocess pid={self.pid}")
        if IS_WINDOWS:
            self._windows_terminate()
        else:
            self._posix_signal(signal.SIGTERM)

    def kill(self) -> None:
        """Send SIGKILL to the child's group. No-op once it has exited."""
        if not self.is_alive():
            return
        logger.debug(f"Force killing subprocess pid={self.pid}")
        if IS_WINDOWS:
            self._process.kill()
        else:
            self._posix_signal(signal.SIGKILL)

    def terminate_with_deadline(self) -> None:
        """Send SIGTERM now and SIGKILL after term_timeout, without blocking.

        Used when another thread is blocked reading the child's output: the
        kill closes the pipe even if the child ignores SIGTERM.
        """
        if not self.is_alive():
            return
        self.terminate()
        with self._kill_timer_lock:
            if self._kill_timer is None:
                self._kill_timer = threading.Timer(self.term_timeout, self.kill)
                self._kill_timer.daemon = True
                self._kill_timer.start()

    def _cancel_kill_timer(self) -> None:
        with self._kill_timer_lock:
            timer, self._kill_timer = self._kill_timer, None
        if timer is not None:
            timer.cancel()

    def reap(self) -> int | None:
        """Terminate gracefully, then forcefully if needed, and collect status.

        Termination strategy:
        1. Send SIGTERM (or CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL
        4. Wait up to kill_timeout for forced exit

        Returns:
            The exit status, or None if the child outlived both timeouts
        """
        if not self.is_alive():
            return self._process.returncode

        self.terminate()
        try:
            return self.wait(timeout=self.term_timeout)
        except subprocess.TimeoutExpired:
            pass

        self.kill()
        try:
            return self.wait(timeout=self.kill_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Subprocess did not exit after kill pid={self.pid}")
            return None

    async def reap_async(self) -> int | None:
        """Run reap() on a worker thread."""
        return await anyio.to_thread.run_sync(self.reap)

    def close(self) -> None:
        """Close both pipes. Safe to call more than once."""
        self._cancel_kill_timer()
        self.close_stdin()
        source = self._process.stdout
        if source is not None and not source.closed:
            try:
                source.close()
            except OSError as e:
                logger.debug(f"Error closing stdout pid={self.pid}: {e}")

    def _posix_signal(self, sig: signal.Signals) -> None:
        try:
            # Process group ID equals the pid because of start_new_session
            pgid = os.getpgid(self.pid)
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            self._process.send_signal(sig)

    def _windows_terminate(self) -> None:
        try:
            # Works because of CREATE_NEW_PROCESS_GROUP
            os.kill(self.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={self.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            self._process.terminate()


def _build_subprocess_kwargs(spec: ProcessSpec) -> dict[str, Any]:
    """Build platform-specific Popen kwargs."""
    kwargs: dict[str, Any] = {}

    if spec.env is not None:
        kwargs["env"] = dict(spec.env)

    if IS_WINDOWS:
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        # POSIX: start_new_session (equivalent to setsid)
        kwargs["start_new_session"] = True

    return kwargs
