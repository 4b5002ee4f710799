"""
Centralized logging configuration for initio.

Console output is colored when attached to a terminal. Install and removal
runs can also be kept in a rotating log file under the per-user app data
directory, so a failed run on a fresh machine can be diagnosed afterwards.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

from .common import app_data_dir

LOGGER_NAME = "initio"
LOG_FILE_NAME = "initio.log"
LOG_MAX_BYTES = 1024 * 1024
LOG_BACKUP_COUNT = 3

# Global logger instance
_logger: Optional[logging.Logger] = None


def default_log_path() -> Path:
    """Run log location: <app data>/logs/initio.log."""
    return app_data_dir() / "logs" / LOG_FILE_NAME


def _use_colors(stream) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    verbose: bool = False,
    quiet: bool = False,
    propagate: bool = False,
    persist: bool = False,
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        verbose: Enable verbose (DEBUG) output
        quiet: Suppress console output (file only)
        propagate: Allow log propagation (useful for testing)
        persist: Keep a rotating run log at default_log_path() when
            log_file is not given

    Returns:
        Configured logger instance
    """
    global _logger

    if verbose:
        effective_level = "DEBUG"
    elif quiet:
        effective_level = "WARNING"
    else:
        effective_level = level.upper()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, effective_level))
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    if not quiet:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, effective_level))
        console_handler.setFormatter(ColoredFormatter(
            "%(levelname_colored)s %(message)s",
            use_colors=_use_colors(sys.stdout),
        ))
        logger.addHandler(console_handler)

    if log_file is None and persist:
        log_file = str(default_log_path())

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # Appends across runs; rolls over at LOG_MAX_BYTES
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(file_handler)

    logger.propagate = propagate

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """
    Get the configured logger instance.

    If logging hasn't been set up, initializes with defaults.
    """
    global _logger
    if _logger is None:
        _logger = setup_logging()
    return _logger


class ColoredFormatter(logging.Formatter):
    """Formatter with colored level names."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    SYMBOLS = {
        "DEBUG": "·",
        "INFO": "✓",
        "WARNING": "!",
        "ERROR": "✗",
        "CRITICAL": "✗✗",
    }

    def __init__(self, fmt: str, use_colors: bool = True):
        super().__init__(fmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        if self.use_colors:
            levelname = record.levelname
            color = self.COLORS.get(levelname, "")
            symbol = self.SYMBOLS.get(levelname, "")
            record.levelname_colored = f"{color}{symbol} {levelname}{self.RESET}"
        else:
            record.levelname_colored = record.levelname
        return super().format(record)
