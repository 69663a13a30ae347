"""Logging configuration for the cachekeeper logger namespace."""

import logging
import sys
from typing import TextIO

from cachekeeper.core.config import get_settings

ROOT_LOGGER_NAME = "cachekeeper"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: int | None = None, stream: TextIO | None = None) -> logging.Logger:
    """Attach a stream handler to the cachekeeper logger.

    Only the package namespace is touched, so hosting applications keep
    control of the root logger. Calling this again replaces the handler
    installed by the previous call instead of stacking a second one.

    Args:
        level: Explicit level; DEBUG when settings.debug is True, otherwise INFO.
        stream: Output stream, stdout by default.

    Returns:
        The configured package logger.
    """
    if level is None:
        level = logging.DEBUG if get_settings().debug else logging.INFO
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(package_logger.handlers):
        if getattr(handler, "_cachekeeper", False):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._cachekeeper = True  # type: ignore[attr-defined]
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return package_logger
