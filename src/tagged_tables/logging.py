"""Logging setup for tagged_tables.

Modules obtain loggers with::

    from tagged_tables.logging import get_logger
    logger = get_logger(__name__)

Configuration happens once, in the CLI entry point.
"""

from __future__ import annotations

import logging

DEFAULT_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def configure_logging(
    level: int | str = logging.INFO,
    fmt: str = DEFAULT_FORMAT,
    stream=None,
) -> None:
    """Configure the package logger. Safe to call more than once.

    Records go to ``stream``, or to ``sys.stderr`` when none is given.
    """
    logger = logging.getLogger("tagged_tables")
    if not logger.handlers:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(fmt))
        logger.addHandler(handler)

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
