"""shellstream environment variable configuration.

Environment variables:
    SHELLSTREAM_ENCODING: default text encoding of new streams
        - default utf-8
        - unknown codec names fall back to the default

    SHELLSTREAM_CHUNK_SIZE: bytes requested per read from an OS channel
        - default 65536
        - clamped to 1..16 MiB

    SHELLSTREAM_WHICH: program used to resolve bare executable names
        - default /usr/bin/which

    SHELLSTREAM_TERM_TIMEOUT: seconds terminate() waits after SIGTERM
        - default 2.0, clamped to 0.1..60

    SHELLSTREAM_KILL_TIMEOUT: seconds terminate() waits after SIGKILL
        - default 1.0, clamped to 0.1..60

    SHELLSTREAM_LOG_DEBUG: debug logging
        - true/1/yes = on (DEBUG records go to a temp file)
        - false/0/no = off (default, INFO records go to stderr)
"""

from __future__ import annotations

import codecs
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_ENCODING = "utf-8"
DEFAULT_CHUNK_SIZE = 0x10000
MAX_CHUNK_SIZE = 16 * 1024 * 1024
DEFAULT_WHICH = "/usr/bin/which"
DEFAULT_TERM_TIMEOUT = 2.0
DEFAULT_KILL_TIMEOUT = 1.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_encoding(value: str | None) -> str:
    """Parse the encoding variable, keeping only codecs Python knows."""
    if not value or not value.strip():
        return DEFAULT_ENCODING
    try:
        return codecs.lookup(value.strip()).name
    except LookupError:
        return DEFAULT_ENCODING


def _parse_chunk_size(value: str | None) -> int:
    if not value:
        return DEFAULT_CHUNK_SIZE
    try:
        size = int(value)
    except ValueError:
        return DEFAULT_CHUNK_SIZE
    return max(1, min(size, MAX_CHUNK_SIZE))


def _parse_timeout(value: str | None, default: float) -> float:
    """Parse a timeout in seconds.

    Args:
        value: Raw environment variable value
        default: Value used when unset or malformed

    Returns:
        The timeout, limited to the 0.1-60 second range
    """
    if not value:
        return default
    try:
        timeout = float(value)
        return max(0.1, min(timeout, 60.0))
    except ValueError:
        return default


@dataclass
class Config:
    """shellstream configuration.

    Attributes:
        encoding: Default encoding for streams created without one
        chunk_size: Bytes requested per read from an OS channel
        which_path: Program that resolves bare executable names
        term_timeout: Seconds to wait for exit after SIGTERM
        kill_timeout: Seconds to wait for exit after SIGKILL
        log_debug: Debug logging to a temp file
        log_file: Log file path (set automatically when log_debug is on)
    """

    encoding: str = DEFAULT_ENCODING
    chunk_size: int = DEFAULT_CHUNK_SIZE
    which_path: str = DEFAULT_WHICH
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(encoding={self.encoding}, "
            f"chunk_size={self.chunk_size}, "
            f"which_path={self.which_path}, "
            f"term_timeout={self.term_timeout}, "
            f"kill_timeout={self.kill_timeout}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the system temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "shellstream"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"shellstream_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from environment variables."""
    log_debug = _parse_bool(os.environ.get("SHELLSTREAM_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        encoding=_parse_encoding(os.environ.get("SHELLSTREAM_ENCODING")),
        chunk_size=_parse_chunk_size(os.environ.get("SHELLSTREAM_CHUNK_SIZE")),
        which_path=os.environ.get("SHELLSTREAM_WHICH") or DEFAULT_WHICH,
        term_timeout=_parse_timeout(
            os.environ.get("SHELLSTREAM_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT
        ),
        kill_timeout=_parse_timeout(
            os.environ.get("SHELLSTREAM_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT
        ),
        log_debug=log_debug,
        log_file=log_file,
    )


# Process-wide configuration (loaded lazily)
_config: Config | None = None


def get_config() -> Config:
    """Return the process-wide configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration from the environment (used by tests)."""
    global _config
    _config = load_config()
    return _config
