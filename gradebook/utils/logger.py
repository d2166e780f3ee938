"""
Centralized logging setup for the Gradebook service.

Provides a ``get_logger`` factory that returns module-specific loggers
all writing to both a shared rotating log file and the console.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from gradebook.config import get_config

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
_LOG_FILE_NAME = "gradebook.log"
_MAX_BYTES = 10 * 1024 * 1024  # 10 MB per log file
_BACKUP_COUNT = 5
_FMT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"

# ---------------------------------------------------------------------------
# Shared formatter & handlers (created on first use)
# ---------------------------------------------------------------------------
_formatter = logging.Formatter(_FMT, datefmt=_DATE_FMT)
_handlers: List[logging.Handler] = []
_console_handler: Optional[logging.Handler] = None


def _shared_handlers() -> List[logging.Handler]:
    global _console_handler
    if _handlers:
        return _handlers

    config = get_config()

    file_handler = RotatingFileHandler(
        str(config.LOG_DIR / _LOG_FILE_NAME),
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(_formatter)
    file_handler.setLevel(logging.DEBUG)  # file always captures everything

    _console_handler = logging.StreamHandler(sys.stdout)
    _console_handler.setFormatter(_formatter)
    _console_handler.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

    _handlers.extend([file_handler, _console_handler])
    return _handlers


def setup_logging(level: str = "INFO") -> None:
    """Set the console verbosity for every logger created by ``get_logger``."""
    _shared_handlers()
    _console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger identified by *name*.

    All loggers share the same file and console handlers so output is
    consistent across the application.

    Args:
        name: Typically ``__name__`` of the calling module.

    Returns:
        A configured :class:`logging.Logger`.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.DEBUG)
        for h in _shared_handlers():
            logger.addHandler(h)
        logger.propagate = False
    return logger
