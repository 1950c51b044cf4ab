"""Per-user config and data directories."""

from __future__ import annotations

import os
import sys
from pathlib import Path

APP_DIR_NAME = "caput"


def _user_dir(override_env: str, windows_env: str, windows_default: str, xdg_env: str, xdg_default: str) -> Path:
    override = os.environ.get(override_env)
    if override:
        return Path(override).expanduser()
    home = Path.home()
    if sys.platform == "win32":
        return Path(os.environ.get(windows_env, home / windows_default)) / APP_DIR_NAME
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / APP_DIR_NAME
    return Path(os.environ.get(xdg_env, home / xdg_default)) / APP_DIR_NAME


def get_config_dir() -> Path:
    """Where config.yaml is looked up. ``CAPUT_CONFIG_DIR`` wins."""
    return _user_dir("CAPUT_CONFIG_DIR", "APPDATA", "AppData/Roaming", "XDG_CONFIG_HOME", ".config")


def get_data_dir() -> Path:
    """Where the cache database lives. ``CAPUT_DATA_DIR`` wins."""
    return _user_dir("CAPUT_DATA_DIR", "LOCALAPPDATA", "AppData/Local", "XDG_DATA_HOME", ".local/share")
