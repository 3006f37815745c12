"""vcs-runner 命令行入口。

通过 Runner 执行一条命令，并把收到的每一行写到 stdout。
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import Config, get_config
from .runtime import EndEvent, RunMode, Runner, RunnerEvent, RunState, UpdateEvent

__all__ = ["build_parser", "main", "setup_logging"]

logger = logging.getLogger(__name__)

# 子进程没有给出退出码时使用的退出码
EXIT_SPAWN_FAILED = 127
EXIT_INTERRUPTED = 130  # 128 + SIGINT(2)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(config: Config) -> None:
    """配置日志输出。

    设置 VCS_RUNNER_LOG_DEBUG 时 DEBUG 日志写入临时文件，否则 INFO 日志
    输出到 stderr。第三方库的日志保持 WARNING 级别。
    """
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("vcs_runner").setLevel(log_level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vcs-runner",
        description="Run a command and stream its output line by line",
    )
    parser.add_argument("--buffer-size", type=int, default=None, help="Bytes per read")
    parser.add_argument(
        "--preserve-line-endings",
        action="store_true",
        help="Keep line terminators in the output",
    )
    parser.add_argument(
        "--async",
        dest="use_async",
        action="store_true",
        help="Drive the run on an asyncio event loop",
    )
    parser.add_argument("--cwd", default=None, help="Working directory for the command")
    parser.add_argument("--input", default=None, help="Text written to the command's stdin")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command and arguments")
    return parser


def _write_lines(event: RunnerEvent, preserve: bool) -> None:
    if isinstance(event, UpdateEvent):
        for line in event.lines:
            sys.stdout.write(line if preserve else line + "\n")
        sys.stdout.flush()
    elif isinstance(event, EndEvent) and event.state is RunState.FAILED:
        logger.warning(f"Run ended with an I/O failure (exit_status={event.exit_status})")


async def _run_async(runner: Runner, args: argparse.Namespace, command: list[str]) -> bool:
    async with runner:
        started = runner.run(command, args.cwd, args.input)
        if started:
            await runner.wait_finished()
        return started


def main(argv: list[str] | None = None) -> int:
    """主入口点。返回进程退出码。"""
    config = get_config()
    setup_logging(config)

    args = build_parser().parse_args(argv)
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        build_parser().print_usage(sys.stderr)
        return 2

    try:
        runner = Runner(
            args.buffer_size,
            RunMode.ASYNCHRONOUS if args.use_async else RunMode.SYNCHRONOUS,
            preserve_line_endings=args.preserve_line_endings,
            event_callback=lambda event: _write_lines(event, args.preserve_line_endings),
        )
    except ValueError as e:
        print(f"vcs-runner: {e}", file=sys.stderr)
        return 2

    try:
        if args.use_async:
            started = asyncio.run(_run_async(runner, args, command))
        else:
            with runner:
                started = runner.run(command, args.cwd, args.input)
    except KeyboardInterrupt:
        logger.info("Interrupted, run cancelled")
        return EXIT_INTERRUPTED

    if not started:
        print(f"vcs-runner: {runner.last_error}", file=sys.stderr)
        return EXIT_SPAWN_FAILED

    return runner.exit_status
