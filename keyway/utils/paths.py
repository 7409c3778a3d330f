"""Filesystem locations for persisted Keyway state."""

from __future__ import annotations

import os
import sys
from pathlib import Path

CONFIG_FILE_NAME = "config.json"
KEY_FILE_NAME = ".key"


def keyway_home() -> Path:
    """Return the directory used for Keyway's own state (``~/.keyway``).

    ``KEYWAY_HOME`` overrides the location; the path is expanded and resolved
    so callers always receive an absolute location.
    """

    override = os.environ.get("KEYWAY_HOME")
    if override:
        return Path(override).expanduser().resolve()
    return Path.home() / ".keyway"


def config_dir() -> Path:
    """Return the directory holding ``config.json``.

    Without an override this is the directory used by the Node.js Keyway CLI
    so that both tools read and write the same credential file.
    """

    if os.environ.get("KEYWAY_HOME"):
        return keyway_home()
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Preferences" / "keyway-nodejs"
    if sys.platform.startswith("win"):
        appdata = os.environ.get("APPDATA") or str(home / "AppData" / "Roaming")
        return Path(appdata) / "keyway-nodejs" / "Config"
    return home / ".config" / "keyway-nodejs"


def config_path() -> Path:
    return config_dir() / CONFIG_FILE_NAME


def key_path() -> Path:
    return keyway_home() / KEY_FILE_NAME


def log_dir() -> Path:
    override = os.environ.get("KEYWAY_LOG_DIR")
    if override:
        return Path(override).expanduser().resolve()
    return keyway_home() / "logs"


__all__ = ["config_dir", "config_path", "key_path", "keyway_home", "log_dir"]
