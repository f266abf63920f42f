"""Logging configuration for chat-siphon.

Every component logs through a child of the ``chat_siphon`` logger, so a
single call to setup_logging() at process start routes capture, cache and
sync messages into one file under ~/chat-siphon/logs/.
"""

import logging
import os
import sys
from pathlib import Path

ROOT_LOGGER_NAME = "chat_siphon"

# Default log directory
DEFAULT_LOG_DIR = Path.home() / "chat-siphon" / "logs"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level_from_env(default: int) -> int:
    """Resolve CHAT_SIPHON_LOG_LEVEL (e.g. DEBUG) to a logging level."""
    name = os.environ.get("CHAT_SIPHON_LOG_LEVEL", "").upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def setup_logging(
    name: str,
    log_dir: Path | None = None,
    level: int = logging.INFO,
    console: bool = True,
) -> logging.Logger:
    """Configure logging for a chat-siphon process.

    Attaches a file handler writing to <log_dir>/<name>.log and, optionally,
    a stderr handler to the package root logger. Component loggers obtained
    through get_logger() propagate to these handlers.

    Args:
        name: Process name (used for the log filename, e.g. 'daemon')
        log_dir: Directory for log files (defaults to ~/chat-siphon/logs/)
        level: Logging level, overridden by CHAT_SIPHON_LOG_LEVEL when set
        console: Whether to also log to stderr

    Returns:
        The configured package root logger
    """
    if log_dir is None:
        log_dir = DEFAULT_LOG_DIR

    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    level = _level_from_env(level)
    root.setLevel(level)

    # Repeated setup (tests, CLI subcommands) must not stack handlers
    if root.handlers:
        return root

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    file_handler = logging.FileHandler(log_dir / f"{name}.log", encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    return root


def get_logger(name: str) -> logging.Logger:
    """Get the logger for a chat-siphon component ('chat_siphon.<name>')."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
