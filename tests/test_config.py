"""Config 模块测试。

测试 VCS_RUNNER_* 环境变量解析和配置管理。
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

import pytest

from vcs_runner.config import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_KILL_TIMEOUT,
    DEFAULT_TERM_TIMEOUT,
    Config,
    get_config,
    load_config,
    reload_config,
)


class TestParseBufferSize:
    """测试读取缓冲区大小解析。"""

    def test_default(self):
        """未设置时使用默认值。"""
        config = load_config()
        assert config.buffer_size == DEFAULT_BUFFER_SIZE

    def test_custom_value(self):
        """自定义值。"""
        with mock.patch.dict(os.environ, {"VCS_RUNNER_BUFFER_SIZE": "512"}, clear=False):
            assert load_config().buffer_size == 512

    def test_invalid_value_falls_back(self):
        """无效值回退到默认值。"""
        with mock.patch.dict(os.environ, {"VCS_RUNNER_BUFFER_SIZE": "lots"}, clear=False):
            assert load_config().buffer_size == DEFAULT_BUFFER_SIZE

    @pytest.mark.parametrize("value", ["0", "-16"])
    def test_minimum_is_one(self, value: str):
        """非正数被提升到 1。"""
        with mock.patch.dict(os.environ, {"VCS_RUNNER_BUFFER_SIZE": value}, clear=False):
            assert load_config().buffer_size == 1


class TestParseBool:
    """测试布尔值解析。"""

    @pytest.mark.parametrize("value", ["true", "True", "TRUE", "1", "yes", "Yes", "on"])
    def test_truthy_values(self, value: str):
        """真值。"""
        with mock.patch.dict(os.environ, {"VCS_RUNNER_DEBUG": value}, clear=False):
            assert load_config().debug is True

    @pytest.mark.parametrize("value", ["false", "False", "FALSE", "0", "no", "No", "off", ""])
    def test_falsy_values(self, value: str):
        """假值。"""
        with mock.patch.dict(os.environ, {"VCS_RUNNER_DEBUG": value}, clear=False):
            assert load_config().debug is False

    def test_debug_default_false(self):
        """Debug 模式默认关闭。"""
        assert load_config().debug is False


class TestParseTimeouts:
    """测试终止超时解析。"""

    def test_defaults(self):
        """默认值。"""
        config = load_config()
        assert config.term_timeout == DEFAULT_TERM_TIMEOUT
        assert config.kill_timeout == DEFAULT_KILL_TIMEOUT

    def test_custom_values(self):
        """自定义值。"""
        env = {"VCS_RUNNER_TERM_TIMEOUT": "0.5", "VCS_RUNNER_KILL_TIMEOUT": "3"}
        with mock.patch.dict(os.environ, env, clear=False):
            config = load_config()
            assert config.term_timeout == 0.5
            assert config.kill_timeout == 3.0

    @pytest.mark.parametrize("value, expected", [("0", 0.1), ("-1", 0.1), ("999", 30.0)])
    def test_clamped(self, value: str, expected: float):
        """超出范围的值被限制在 0.1-30 之间。"""
        with mock.patch.dict(os.environ, {"VCS_RUNNER_TERM_TIMEOUT": value}, clear=False):
            assert load_config().term_timeout == expected

    def test_invalid_value_falls_back(self):
        """无效值回退到默认值。"""
        with mock.patch.dict(os.environ, {"VCS_RUNNER_KILL_TIMEOUT": "soon"}, clear=False):
            assert load_config().kill_timeout == DEFAULT_KILL_TIMEOUT


class TestLogDebug:
    """测试日志调试模式。"""

    def test_log_file_only_when_enabled(self):
        """关闭时不生成日志文件路径。"""
        config = load_config()
        assert config.log_debug is False
        assert config.log_file is None

    def test_log_file_generated(self):
        """开启时生成临时目录下的日志文件路径。"""
        with mock.patch.dict(os.environ, {"VCS_RUNNER_LOG_DEBUG": "1"}, clear=False):
            config = load_config()
            assert config.log_debug is True
            assert config.log_file is not None
            log_file = Path(config.log_file)
            assert log_file.parent.name == "vcs-runner"
            assert log_file.name.startswith("vcs_runner_debug_")


class TestConfigMethods:
    """测试 Config 类方法。"""

    def test_encoding(self):
        """编码设置。"""
        with mock.patch.dict(os.environ, {"VCS_RUNNER_ENCODING": "latin-1"}, clear=False):
            assert load_config().encoding == "latin-1"

    def test_repr(self):
        """字符串表示。"""
        config = Config(buffer_size=64, debug=True)
        repr_str = repr(config)
        assert "buffer_size=64" in repr_str
        assert "debug=True" in repr_str
        assert "encoding=utf-8" in repr_str


class TestGlobalConfig:
    """测试全局配置实例。"""

    def test_get_config_returns_same_instance(self):
        """get_config 返回相同实例。"""
        # 先 reload 确保干净状态
        reload_config()
        config1 = get_config()
        config2 = get_config()
        assert config1 is config2

    def test_reload_config_creates_new_instance(self):
        """reload_config 创建新实例。"""
        config1 = get_config()
        config2 = reload_config()
        assert config1 is not config2

    def test_reload_picks_up_environment(self):
        """reload 后读取新的环境变量。"""
        get_config()
        with mock.patch.dict(os.environ, {"VCS_RUNNER_BUFFER_SIZE": "32"}, clear=False):
            assert reload_config().buffer_size == 32
            assert get_config().buffer_size == 32
