"""Logging for the easy_split namespace.

Modules call ``get_logger(__name__)``; the app calls ``configure_logging`` with
``Config.LOG_LEVEL``. Without it the level comes from EASY_SPLIT_LOG_LEVEL.
"""

import logging
import os
import sys

ROOT_LOGGER_NAME = "easy_split"
LOG_FORMAT = "%(levelname)s [%(name)s] %(message)s"


def configure_logging(level=None):
    """Install the stderr handler once and set the namespace level.

    Args:
        level: int or level name. If None, reads EASY_SPLIT_LOG_LEVEL (INFO).
    """
    if level is None:
        level = os.environ.get("EASY_SPLIT_LOG_LEVEL") or "INFO"
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(handler)
        root_logger.propagate = False
    root_logger.setLevel(level)


def get_logger(name):
    """Logger under the easy_split namespace for a module name."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
