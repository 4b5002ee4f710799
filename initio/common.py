"""
Common utilities shared across initio modules.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

APP_DIR_NAME = "Initio"


def app_data_dir() -> Path:
    """
    Get the per-user application data directory.

    Returns:
        %APPDATA%/Initio on Windows, $XDG_CONFIG_HOME/initio elsewhere
    """
    if sys.platform == "win32":
        base = os.environ.get("APPDATA") or os.path.expanduser("~/AppData/Roaming")
        return Path(base) / APP_DIR_NAME
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.expanduser("~/.config")
    return Path(base) / APP_DIR_NAME.lower()


def format_duration(seconds: float) -> str:
    """Format seconds as mm:ss (minutes keep growing past an hour)."""
    total = max(0, int(round(seconds)))
    minutes, secs = divmod(total, 60)
    return f"{minutes:02d}:{secs:02d}"


def vlog(msg: str, verbose: bool = False) -> None:
    """
    Log verbose message using structured logging.

    Args:
        msg: Message to log
        verbose: Whether verbose mode is enabled
    """
    if verbose or os.environ.get("INITIO_DEBUG", "0") == "1":
        from .logging_config import get_logger
        get_logger().info(msg)
