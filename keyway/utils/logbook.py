"""Rotating JSON-lines logger for Keyway actions.

Every user-visible action (push, pull, sync, login, logout) leaves one
structured record in ``~/.keyway/logs/keyway.log``. Records carry key names
and counts only; secret values never reach the log.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict

from .paths import log_dir

LOGGER_NAME = "keyway"
LOG_FILE_NAME = "keyway.log"


def get_logger() -> logging.Logger:
    """Return the package logger, attaching the rotating handler once."""

    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    directory = log_dir()
    try:
        directory.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            directory / LOG_FILE_NAME,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
    except OSError:
        # read-only home: keep running without a log file
        logger.addHandler(logging.NullHandler())
        return logger
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    return logger


def reset_logger() -> None:
    """Detach and close every handler of the package logger."""

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def log_event(action: str, status: str = "success", **fields: Any) -> Dict[str, Any]:
    """Write a structured record for *action* and return it."""

    record: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
        "action": action,
        "status": status,
        **fields,
    }
    get_logger().info(json.dumps(record, sort_keys=True, default=str))
    return record


__all__ = ["get_logger", "log_event", "reset_logger"]
