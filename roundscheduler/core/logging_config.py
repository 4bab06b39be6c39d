"""
Logging setup shared by the API, the Celery worker and the CLI.
"""

import logging
import sys

from roundscheduler.core.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Noisy third-party loggers
LIBRARY_LEVELS = {
    "uvicorn": logging.WARNING,
    "fastapi": logging.WARNING,
    "celery": logging.INFO,
    "kombu": logging.WARNING,
    "amqp": logging.WARNING,
}


def _resolve_level(log_level) -> int:
    if log_level is None:
        log_level = LOG_LEVEL
    if isinstance(log_level, int):
        return log_level
    return getattr(logging, str(log_level).upper(), logging.INFO)


def setup_logging(log_level=None, stream=None):
    """
    Configure the root logger with a single console handler.

    Calling it again replaces the handler it installed earlier and leaves any
    other handlers (pytest's capture handler, for instance) in place.

    Args:
        log_level: Level name or number; defaults to ROUNDSCHEDULER_LOG_LEVEL
        stream: Output stream, stdout by default
    """
    level = _resolve_level(log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        if getattr(handler, "_roundscheduler", False):
            root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    console_handler._roundscheduler = True
    root_logger.addHandler(console_handler)

    for name, library_level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(library_level)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Module name (usually __name__)
    """
    return logging.getLogger(name)
