"""
Logging configuration for the client.

Every module logs through a child of the ``ironvein_client`` logger;
``setup_logging`` attaches the handlers to that one logger, so embedding
applications that never call it keep their own logging setup untouched.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

from .config import get_config

ROOT_LOGGER_NAME = "ironvein_client"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(log_level: str) -> int:
    level = logging.getLevelName(log_level.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[Union[str, Path]] = None,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Configure the client logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR. Falls back to ``debug.log_level``
            from the configuration; unknown names mean INFO.
        log_file: Also write to this file. Falls back to ``debug.log_file``.
        log_to_console: Write to stderr, keeping stdout for the console client.

    Returns:
        The ``ironvein_client`` logger.
    """
    debug = get_config().debug
    level = _resolve_level(log_level or debug.log_level)
    log_file = log_file or debug.log_file

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    # Repeated calls replace the handlers instead of stacking them
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handlers = []
    if log_to_console:
        handlers.append(logging.StreamHandler(sys.stderr))
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    return root


def get_logger(name: str) -> logging.Logger:
    """Child logger for a module; accepts plain names and dotted ``__name__`` values."""
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def log_with_context(logger: logging.Logger, level: int, msg: str, **context) -> None:
    """Log ``msg [key=value | ...]``, skipping the suffix when there is no context."""
    if context:
        msg = f"{msg} [{' | '.join(f'{k}={v}' for k, v in context.items())}]"
    logger.log(level, msg)
