"""Logging configuration helpers."""

from __future__ import annotations

import logging
from typing import Union


def configure_logging(level: Union[int, str] = logging.WARNING) -> logging.Logger:
    """Configure application logging with a single stream handler.

    Safe to call more than once; later calls only change the level.

    Args:
        level: Level name ("DEBUG", "INFO", ...) or logging constant

    Returns:
        The package logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    logger = logging.getLogger("oitcalc")
    logger.setLevel(level)
    if logger.handlers:
        return logger
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
