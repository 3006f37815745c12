"""VCS_RUNNER 环境变量配置管理。

环境变量:
    VCS_RUNNER_BUFFER_SIZE: 每次读取的字节数
        - 默认 4096，最小 1，无效值回退到默认值

    VCS_RUNNER_ENCODING: 默认文本过滤器使用的编码
        - 默认 utf-8

    VCS_RUNNER_DEBUG: 调试模式
        - true/1/yes = 子进程 stderr 直通到当前终端
        - false/0/no = 丢弃子进程 stderr (默认)

    VCS_RUNNER_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (DEBUG 日志输出到临时文件)
        - false/0/no = 关闭 (默认，INFO 日志输出到 stderr)

    VCS_RUNNER_TERM_TIMEOUT: SIGTERM 后等待多少秒再发送 SIGKILL
        - 默认 2.0，限制在 0.1-30 之间

    VCS_RUNNER_KILL_TIMEOUT: SIGKILL 后等待的秒数
        - 默认 1.0，限制在 0.1-30 之间
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_BUFFER_SIZE = 4096
DEFAULT_ENCODING = "utf-8"
DEFAULT_TERM_TIMEOUT = 2.0
DEFAULT_KILL_TIMEOUT = 1.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_buffer_size(value: str | None) -> int:
    if not value:
        return DEFAULT_BUFFER_SIZE
    try:
        size = int(value)
    except ValueError:
        return DEFAULT_BUFFER_SIZE
    return max(1, size)


def _parse_timeout(value: str | None, default: float) -> float:
    if not value:
        return default
    try:
        timeout = float(value)
    except ValueError:
        return default
    return max(0.1, min(timeout, 30.0))


@dataclass
class Config:
    """Runner 配置。

    Attributes:
        buffer_size: 每次读取的字节数
        encoding: 默认文本过滤器及输入文本使用的编码
        debug: 是否让子进程 stderr 直通
        log_debug: 是否将调试日志输出到临时文件
        log_file: 日志文件路径（log_debug=True 时自动生成）
        term_timeout: SIGTERM 后的等待时间
        kill_timeout: SIGKILL 后的等待时间
    """

    buffer_size: int = DEFAULT_BUFFER_SIZE
    encoding: str = DEFAULT_ENCODING
    debug: bool = False
    log_debug: bool = False
    log_file: str | None = None
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT

    def __repr__(self) -> str:
        return (
            f"Config(buffer_size={self.buffer_size}, "
            f"encoding={self.encoding}, "
            f"debug={self.debug}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"term_timeout={self.term_timeout}, "
            f"kill_timeout={self.kill_timeout})"
        )


def _generate_log_file_path() -> str:
    """生成带时间戳的日志文件路径。"""
    log_dir = Path(tempfile.gettempdir()) / "vcs-runner"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"vcs_runner_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("VCS_RUNNER_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        buffer_size=_parse_buffer_size(os.environ.get("VCS_RUNNER_BUFFER_SIZE")),
        encoding=os.environ.get("VCS_RUNNER_ENCODING") or DEFAULT_ENCODING,
        debug=_parse_bool(os.environ.get("VCS_RUNNER_DEBUG"), default=False),
        log_debug=log_debug,
        log_file=log_file,
        term_timeout=_parse_timeout(
            os.environ.get("VCS_RUNNER_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT
        ),
        kill_timeout=_parse_timeout(
            os.environ.get("VCS_RUNNER_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT
        ),
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
