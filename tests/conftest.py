"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# Helper child programs
FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_CHILD = FIXTURES_DIR / "fake_child.py"

from shellstream.config import reload_config  # noqa: E402
from shellstream.runtime import Context  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch: pytest.MonkeyPatch):
    """Every test starts from the default configuration."""
    for name in (
        "SHELLSTREAM_ENCODING",
        "SHELLSTREAM_CHUNK_SIZE",
        "SHELLSTREAM_WHICH",
        "SHELLSTREAM_TERM_TIMEOUT",
        "SHELLSTREAM_KILL_TIMEOUT",
        "SHELLSTREAM_LOG_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    yield reload_config()
    reload_config()


@pytest.fixture
def project_root() -> Path:
    return PROJECT_ROOT


@pytest.fixture
def python() -> str:
    """Absolute path of the running interpreter, for launching children."""
    return sys.executable


@pytest.fixture
def fake_child() -> str:
    """Path of the fake child program."""
    return str(FAKE_CHILD)


@pytest.fixture
def context(tmp_path: Path) -> Context:
    """Blank context with the host environment, running in a temp directory."""
    return Context.blank().with_env(dict(os.environ)).with_cwd(tmp_path)
