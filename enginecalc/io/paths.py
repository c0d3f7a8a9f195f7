"""Helpers to locate the per-user enginecalc configuration directory."""

from __future__ import annotations

import os
import sys
from pathlib import Path

__all__ = ["APP_NAME", "CONFIG_DIR_ENV", "config_dir", "set_config_dir_override"]

APP_NAME = "enginecalc"
CONFIG_DIR_ENV = "ENGINECALC_CONFIG_DIR"

_CONFIG_DIR_OVERRIDE: Path | None = None


def set_config_dir_override(path: Path | None) -> None:
    """Force :func:`config_dir` to return ``path`` (used in tests)."""

    global _CONFIG_DIR_OVERRIDE
    _CONFIG_DIR_OVERRIDE = Path(path) if path is not None else None


def _platform_config_root() -> Path:
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support"
    if sys.platform.startswith("win"):
        appdata = os.environ.get("APPDATA")
        return Path(appdata) if appdata else home / "AppData" / "Roaming"
    xdg = os.environ.get("XDG_CONFIG_HOME")
    return Path(xdg) if xdg else home / ".config"


def config_dir() -> Path:
    """
    Directory holding the user's enginecalc configuration.

    Resolution order: test override, ``$ENGINECALC_CONFIG_DIR``, then the
    platform convention (Application Support on macOS, %APPDATA% on Windows,
    $XDG_CONFIG_HOME or ~/.config elsewhere).
    """
    if _CONFIG_DIR_OVERRIDE is not None:
        return _CONFIG_DIR_OVERRIDE

    env = os.environ.get(CONFIG_DIR_ENV)
    if env:
        return Path(env).expanduser()

    return _platform_config_root() / APP_NAME
