from __future__ import annotations

import json
import logging
import os
import traceback
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

_LOGGER = logging.getLogger("skyscore.logging")
_LOG_DIR_ENV = "SKYSCORE_LOG_DIR"
_LOG_LEVEL_ENV = "SKYSCORE_LOG_LEVEL"
_LOG_FILE = "skyscore.log"
_AUDIT_FILE = "audit.jsonl"
_AUDIT_LOGGER_NAME = "skyscore.audit"
_AUDIT_MAX_BYTES = 10 * 1024 * 1024
_AUDIT_BACKUPS = 3


def get_log_dir() -> Path:
    configured = os.environ.get(_LOG_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".cache" / "skyscore" / "logs"


def get_log_path() -> Path:
    return get_log_dir() / _LOG_FILE


def configure_logging() -> None:
    """Attach a NullHandler to the package logger and honour SKYSCORE_LOG_LEVEL.

    Applications own the handlers; the library only sets a level when asked to.
    """
    package_logger = logging.getLogger("skyscore")
    if not any(isinstance(handler, logging.NullHandler) for handler in package_logger.handlers):
        package_logger.addHandler(logging.NullHandler())
    level_name = os.environ.get(_LOG_LEVEL_ENV)
    if not level_name:
        return
    level = logging.getLevelName(level_name.strip().upper())
    if isinstance(level, int):
        package_logger.setLevel(level)
    else:
        _LOGGER.warning("Ignoring unknown %s=%r", _LOG_LEVEL_ENV, level_name)


def log_exception(context: str, exc: BaseException) -> Path | None:
    try:
        log_dir = get_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        path = get_log_path()
        timestamp = datetime.now().isoformat()
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"[{timestamp}] {context} failed: {type(exc).__name__}: {exc}\n")
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=handle)
            handle.write("\n")
        return path
    except Exception as log_exc:
        _LOGGER.warning("Failed to write log file: %s", log_exc, exc_info=True)
        return None


def setup_audit_log(path: Path | None = None) -> Path:
    """Route the audit logger to a rotating JSONL file and return its path."""
    target = path or get_log_dir() / _AUDIT_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(_AUDIT_LOGGER_NAME)
    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == target:
            return target
    handler = RotatingFileHandler(
        target,
        maxBytes=_AUDIT_MAX_BYTES,
        backupCount=_AUDIT_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return target


def log_audit(event: str, **fields: Any) -> None:
    """Emit one structured audit line on the ``skyscore.audit`` logger."""
    record = {"evt": event, **fields}
    logging.getLogger(_AUDIT_LOGGER_NAME).info(
        json.dumps(record, sort_keys=True, separators=(",", ":"), default=str)
    )
