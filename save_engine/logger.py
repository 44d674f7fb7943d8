"""Loguru-based logging setup."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

LOG_FILE_NAME = "save-engine.log"

_CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level:<7}</level> | {message}"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | {thread.name} | {name}:{line} | {message}"


def setup_logger(log_dir: Path | None = None, level: str = "INFO", console: bool = True) -> None:
    """
    Route engine logs to stderr and, when *log_dir* is given, a rotating file.

    A game embedding the engine usually owns the console, so it passes
    ``console=False`` and keeps only the file sink. The file sink is queued
    because autosaves run on a background thread.
    """
    logger.remove()

    if console:
        logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT, colorize=True)

    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_dir / LOG_FILE_NAME),
            level="DEBUG",
            format=_FILE_FORMAT,
            rotation="5 MB",
            retention="7 days",
            encoding="utf-8",
            enqueue=True,
        )
