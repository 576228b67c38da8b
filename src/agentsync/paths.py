"""
Base directory resolution.

XDG variables win when set; otherwise fall back to the per-OS
convention (``~/.config`` and ``~/.local/share`` on POSIX, ``APPDATA``
and ``LOCALAPPDATA`` on Windows). Everything is re-read from the
environment on each call so tests can redirect it with monkeypatch.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional


def user_home() -> Path:
    """Home directory providers resolve their roots against."""
    override = os.environ.get("AGENTSYNC_USER_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home()


def _env_dir(
    var: str, posix_default: str, windows_var: str, home: Optional[Path] = None
) -> Path:
    value = os.environ.get(var)
    if value:
        return Path(value).expanduser()
    if sys.platform == "win32" and os.environ.get(windows_var):
        return Path(os.environ[windows_var])
    return (home or user_home()) / posix_default


def config_home(home: Optional[Path] = None) -> Path:
    return _env_dir("XDG_CONFIG_HOME", ".config", "APPDATA", home)


def data_home(home: Optional[Path] = None) -> Path:
    return _env_dir("XDG_DATA_HOME", ".local/share", "LOCALAPPDATA", home)


def sync_home() -> Path:
    """Where state, contexts, credentials and settings live.

    ``$AGENTSYNC_HOME`` or ``<data>/opencode/sync``.
    """
    override = os.environ.get("AGENTSYNC_HOME")
    if override:
        return Path(override).expanduser()
    return data_home() / "opencode" / "sync"


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def to_posix(relative: Path | str) -> str:
    """Stored relative paths always use forward slashes."""
    return Path(relative).as_posix()
