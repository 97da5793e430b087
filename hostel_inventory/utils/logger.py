"""Process-wide logging setup shared by every hold engine module."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from hostel_inventory.utils.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Server loggers that should follow the engine's level instead of their own.
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

_LOGGER_INITIALIZED = False


def _resolve_level(level: Optional[str]) -> int:
    name = (level or get_settings().log_level).strip().upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        raise ValueError(f"LOG_LEVEL must be a logging level name, got {name!r}")
    return resolved


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process-wide logging once; later calls are no-ops."""

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    resolved_level = _resolve_level(level)
    logging.basicConfig(level=resolved_level, format=LOG_FORMAT, stream=sys.stdout)
    for name in _SERVER_LOGGERS:
        logging.getLogger(name).setLevel(resolved_level)
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger for ``name``, configuring logging on first use."""
    configure_logging()
    return logging.getLogger(name)
