"""Console logging setup for CLI runs."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

PACKAGE_LOGGER = "news_harvest"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach a rich console handler to the package logger."""

    logger = logging.getLogger(PACKAGE_LOGGER)
    resolved_level = _level_from_string(level)
    logger.setLevel(resolved_level)
    logger.handlers = []
    logger.propagate = False

    handler = RichHandler(rich_tracebacks=True, show_time=True, show_level=True)
    handler.setLevel(resolved_level)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    return logger


def _level_from_string(level: str) -> int:
    value = logging.getLevelName(level.strip().upper())
    if isinstance(value, int):
        return value
    return logging.INFO
