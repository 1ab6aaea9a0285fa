"""
Logging configuration for SpireStats.

Every module logs through a child of the "spirestats" logger
(`get_logger(__name__)`). Only the CLI entry points call setup_logging(),
which attaches a rotating file in the data directory and, optionally,
stdout. Background work runs on named threads (watcher, backups, prewarm),
so the thread name is part of every record.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from spirestats.config.paths import get_data_dir

LOGGER_NAME = "spirestats"
LOG_FILENAME = "spirestats.log"
MAX_BYTES = 5 * 1024 * 1024  # 5MB
BACKUP_COUNT = 3
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty at INFO; only their warnings are worth keeping
QUIET_LOGGERS = ("watchdog", "uvicorn.access")


def get_log_path(portable: bool = False) -> Path:
    """Get the path to the log file."""
    return get_data_dir(portable=portable) / LOG_FILENAME


def setup_logging(
    portable: bool = False,
    console: bool = True,
    level: int = logging.INFO,
    log_path: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure and return the application logger.

    Calling it again replaces the handlers from the previous call, so
    several commands in one process never write each record twice.

    Args:
        portable: If True, use portable data directory for log file
        console: If True, also log to stdout
        level: Minimum level for the logger and its handlers
        log_path: Log file to use instead of the data directory default

    Returns:
        The "spirestats" logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if log_path is None:
        log_path = get_log_path(portable=portable)
    try:
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError as e:
        # Keep running without a log file
        print(f"Warning: Could not create log file at {log_path}: {e}")
    else:
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger under the "spirestats" namespace.

    Args:
        name: Module name (usually __name__); prefixed with "spirestats."
            when it is outside the namespace. None gives the root app logger.
    """
    if not name or name == LOGGER_NAME:
        return logging.getLogger(LOGGER_NAME)
    if not name.startswith(LOGGER_NAME + "."):
        name = f"{LOGGER_NAME}.{name}"
    return logging.getLogger(name)
