"""Logging setup for programs built on shellstream.

The library itself only logs through module loggers; configure_logging() is
for the entry point of a script that wants to see those records.
"""

from __future__ import annotations

import logging
import sys

from .config import Config, get_config

__all__ = ["LOG_FORMAT", "configure_logging"]

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(config: Config | None = None) -> logging.Handler:
    """Install a log handler according to the configuration.

    With log_debug on, DEBUG records go to the temp log file; otherwise INFO
    records go to stderr. Other libraries stay at WARNING.

    Args:
        config: Configuration to use (default: the process-wide one)

    Returns:
        The installed handler
    """
    config = config or get_config()

    if config.log_debug and config.log_file:
        handler: logging.Handler = logging.FileHandler(config.log_file, encoding="utf-8")
        log_level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        log_level = logging.INFO
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logging.basicConfig(
        level=logging.WARNING,
        handlers=[handler],
    )
    logging.getLogger("shellstream").setLevel(log_level)
    return handler
