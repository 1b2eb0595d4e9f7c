"""
Package-wide Settings for GP Guiding

Holds the package logger. Every module logs through the "gpguiding" logger
so the host guiding application can route or silence the GP messages with a
single call.

Usage:
    >>> from gpguiding.config import get_logger, set_log_level
    >>> set_log_level(logging.DEBUG)
    >>> get_logger().debug("inference done")
"""

from __future__ import annotations

import logging
from typing import Optional, Union

LOGGER_NAME = "gpguiding"

_logger = logging.getLogger(LOGGER_NAME)
if not _logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    _logger.addHandler(_handler)
_logger.setLevel(logging.INFO)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get the package logger, or one of its children.

    Args:
        name: Optional child name, e.g. "gp" gives "gpguiding.gp"

    Returns:
        Logger instance
    """
    if name is None:
        return _logger
    return _logger.getChild(name)


def set_log_level(level: Union[int, str]) -> None:
    """Set the level of the package logger."""
    _logger.setLevel(level)
