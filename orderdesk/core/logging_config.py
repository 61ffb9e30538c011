"""Root logging setup for the orderdesk command-line entry points."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

DEFAULT_MAX_BYTES = 1024 * 1024
DEFAULT_BACKUP_COUNT = 3


def resolve_level(level: Union[int, str]) -> int:
    """Map ``"info"``/``"WARNING"``/``20`` style levels to the numeric value."""
    if isinstance(level, int):
        return level
    numeric = logging.getLevelName(str(level).upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level '{level}'")
    return numeric


def rotating_file_handler(
    log_file: Union[str, Path],
    *,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> RotatingFileHandler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    console: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> List[logging.Handler]:
    """Replace the root handlers with stdout and/or a rotating log file.

    The scanner CLI passes ``log_max_bytes``/``log_backup_count`` from its
    ``config.txt``. With neither console nor file requested, records still go
    to stderr so failures are not lost. Returns the installed handlers.
    """
    numeric_level = resolve_level(level)

    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file:
        handlers.append(rotating_file_handler(log_file, max_bytes=max_bytes, backup_count=backup_count))
    if not handlers:
        handlers.append(logging.StreamHandler(sys.stderr))

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )
    return handlers


__all__ = ["configure_logging", "resolve_level", "rotating_file_handler", "LOG_FORMAT", "LOG_DATEFMT"]
