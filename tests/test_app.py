"""命令行入口测试。"""

from __future__ import annotations

import os
from typing import Callable

import pytest

from vcs_runner.app import EXIT_SPAWN_FAILED, build_parser, main


class TestParser:
    """测试参数解析。"""

    def test_command_keeps_its_own_options(self):
        """命令之后的参数全部属于命令。"""
        args = build_parser().parse_args(["--async", "git", "log", "--oneline"])
        assert args.use_async is True
        assert args.command == ["git", "log", "--oneline"]

    def test_defaults(self):
        """默认值。"""
        args = build_parser().parse_args(["true"])
        assert args.buffer_size is None
        assert args.preserve_line_endings is False
        assert args.cwd is None
        assert args.input is None


class TestMain:
    """测试 main() 的输出和退出码。"""

    def test_prints_lines(self, fake_vcs: Callable[..., list[str]], capsys: pytest.CaptureFixture[str]):
        """逐行输出到 stdout。"""
        assert main(fake_vcs("--line", "one", "--line", "two")) == 0
        assert capsys.readouterr().out == "one\ntwo\n"

    def test_preserve_line_endings(
        self, fake_vcs: Callable[..., list[str]], capsys: pytest.CaptureFixture[str]
    ):
        """保留行结束符时原样输出。"""
        assert main(["--preserve-line-endings", *fake_vcs("--chunk", "610a62")]) == 0
        assert capsys.readouterr().out == "a\nb"

    def test_strip_adds_newline_to_last_line(
        self, fake_vcs: Callable[..., list[str]], capsys: pytest.CaptureFixture[str]
    ):
        """去除行结束符时每行补一个换行。"""
        assert main(fake_vcs("--chunk", "610a62")) == 0
        assert capsys.readouterr().out == "a\nb\n"

    def test_exit_status_passthrough(self, fake_vcs: Callable[..., list[str]]):
        """子进程退出码原样返回。"""
        assert main(fake_vcs("--exit-code", "3")) == 3

    def test_input(self, fake_vcs: Callable[..., list[str]], capsys: pytest.CaptureFixture[str]):
        """--input 写入子进程 stdin。"""
        assert main(["--input", "piped\n", *fake_vcs("--echo-stdin")]) == 0
        assert capsys.readouterr().out == "piped\n"

    def test_cwd(self, temp_workspace, fake_vcs: Callable[..., list[str]], capsys: pytest.CaptureFixture[str]):
        """--cwd 设置工作目录。"""
        assert main(["--cwd", str(temp_workspace), *fake_vcs("--pwd")]) == 0
        output = capsys.readouterr().out.strip()
        assert os.path.realpath(output) == os.path.realpath(temp_workspace)

    @pytest.mark.timeout(10)
    def test_async_mode(self, fake_vcs: Callable[..., list[str]], capsys: pytest.CaptureFixture[str]):
        """--async 模式输出相同。"""
        assert main(["--async", *fake_vcs("--line", "one", "--line", "two", "--exit-code", "4")]) == 4
        assert capsys.readouterr().out == "one\ntwo\n"

    def test_missing_command(self, capsys: pytest.CaptureFixture[str]):
        """命令不存在时返回 127。"""
        assert main(["nonexistent_command_xyz_123"]) == EXIT_SPAWN_FAILED
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "vcs-runner:" in captured.err

    def test_no_command(self, capsys: pytest.CaptureFixture[str]):
        """没有命令时打印用法并返回 2。"""
        assert main([]) == 2
        assert "usage:" in capsys.readouterr().err

    def test_invalid_buffer_size(self, fake_vcs: Callable[..., list[str]], capsys: pytest.CaptureFixture[str]):
        """非正数缓冲区大小返回 2。"""
        assert main(["--buffer-size", "0", *fake_vcs()]) == 2
        assert "buffer_size" in capsys.readouterr().err
