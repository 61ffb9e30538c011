from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from pathlib import Path
from typing import Awaitable, Callable, Optional, Tuple


LOG_LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def add_common_cli_arguments(
    parser: argparse.ArgumentParser,
    *,
    default_log_level: Optional[str] = "info",
    include_config: bool = True,
    include_console_control: bool = True,
    default_console_output: bool = True,
) -> None:
    parser.add_argument(
        "--log-level",
        choices=sorted(LOG_LEVELS.keys()),
        default=default_log_level,
        help="Logging verbosity",
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Optional path to write structured logs",
    )

    if include_config:
        parser.add_argument(
            "--config",
            type=Path,
            default=None,
            help="Configuration file (key = value) used for defaults",
        )

    if include_console_control:
        console_group = parser.add_mutually_exclusive_group()
        console_group.add_argument(
            "--console",
            dest="console_output",
            action="store_true",
            default=default_console_output,
            help="Log to the console",
        )
        console_group.add_argument(
            "--no-console",
            dest="console_output",
            action="store_false",
            help="Log to file only (no console output)",
        )


def _positive_number(value: str, typ: type, name: str):
    """Generic positive number validator for argparse."""
    try:
        parsed = typ(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Value must be a {name}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("Value must be positive")
    return parsed


def positive_int(value: str) -> int:
    return _positive_number(value, int, "integer")


def parse_size(value: str) -> Tuple[int, int]:
    """Parse ``WIDTHxHEIGHT`` (or a single number for a square)."""
    text = value.lower().strip()
    try:
        if "x" in text:
            width_text, height_text = text.split("x", 1)
            width, height = int(width_text), int(height_text)
        else:
            width = height = int(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Size must look like 250x250, got '{value}'") from exc
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError("Size dimensions must be positive")
    return width, height


def install_signal_handlers(
    shutdown: Callable[[], Awaitable[None]],
    loop: asyncio.AbstractEventLoop,
) -> None:
    """Register SIGINT/SIGTERM handlers that run ``shutdown`` once."""

    shutdown_in_progress = False

    def signal_handler():
        nonlocal shutdown_in_progress
        if shutdown_in_progress:
            return
        shutdown_in_progress = True
        loop.create_task(shutdown())

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, signal_handler)
