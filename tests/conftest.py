"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
FAKE_VCS_PATH = FIXTURES_DIR / "fake_vcs.py"


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Create temporary workspace directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def fake_vcs() -> Callable[..., list[str]]:
    """Build an argv that runs the fake VCS tool with the given arguments."""

    def build(*args: str) -> list[str]:
        return [sys.executable, str(FAKE_VCS_PATH), *args]

    return build


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch: pytest.MonkeyPatch):
    """Make every test start from the default configuration."""
    from vcs_runner import config

    for name in (
        "VCS_RUNNER_BUFFER_SIZE",
        "VCS_RUNNER_ENCODING",
        "VCS_RUNNER_DEBUG",
        "VCS_RUNNER_LOG_DEBUG",
        "VCS_RUNNER_TERM_TIMEOUT",
        "VCS_RUNNER_KILL_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "_config", None)
    yield
    monkeypatch.setattr(config, "_config", None)
