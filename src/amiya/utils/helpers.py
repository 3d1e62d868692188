import math
import os
from pathlib import Path
from typing import Optional

APP_NAME = "amiya"
APP_VERSION = "0.1.0"

SOCKET_NAME = "amiya.sock"


def runtime_dir() -> Path:
    """
    Resolve the per-user runtime directory.

    Uses $XDG_RUNTIME_DIR, then $TMPDIR, then /tmp.
    """
    base = os.environ.get("XDG_RUNTIME_DIR") or os.environ.get("TMPDIR") or "/tmp"
    return Path(base)


def config_dir() -> Path:
    """Resolve $XDG_CONFIG_HOME/amiya, falling back to ~/.config/amiya"""
    base = os.environ.get("XDG_CONFIG_HOME")
    if base:
        return Path(base) / APP_NAME
    return Path.home() / ".config" / APP_NAME


def default_socket_path(create_parent: bool = False) -> Path:
    """
    Path of the command socket: <runtime dir>/amiya/amiya.sock

    Args:
        create_parent: Create the socket directory if it does not exist
    """
    path = runtime_dir() / APP_NAME / SOCKET_NAME
    if create_parent:
        path.parent.mkdir(parents=True, exist_ok=True)
    return path


def resolve_socket_path(override: Optional[str] = None, create_parent: bool = False) -> Path:
    if override:
        path = Path(override).expanduser()
        if create_parent:
            path.parent.mkdir(parents=True, exist_ok=True)
        return path
    return default_socket_path(create_parent=create_parent)


def clamp(value: float, low: float, high: float) -> float:
    """
    Clamp value into [low, high].

    Raises:
        ValueError: value is NaN
    """
    value = float(value)
    if math.isnan(value):
        raise ValueError("Level must be a number, got NaN")
    return max(low, min(high, value))


def clamp_percent(value: float) -> float:
    return clamp(value, 0.0, 100.0)
