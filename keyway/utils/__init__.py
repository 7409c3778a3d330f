"""Utility helpers exposed by Keyway."""

from .logbook import get_logger, log_event
from .paths import config_path, key_path, keyway_home, log_dir

__all__ = ["config_path", "get_logger", "key_path", "keyway_home", "log_dir", "log_event"]
