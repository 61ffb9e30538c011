"""Shared logging helpers for the orderdesk project."""

from __future__ import annotations

import logging
from typing import Any, MutableMapping, Optional, Tuple, Union

MODULE_LOGGER_NAMESPACE = "orderdesk"
DEFAULT_COMPONENT = "Core"


def _normalize_logger_name(name: Optional[str]) -> str:
    if not name:
        return MODULE_LOGGER_NAMESPACE
    if name.startswith(MODULE_LOGGER_NAMESPACE):
        return name
    return f"{MODULE_LOGGER_NAMESPACE}.{name}"


def _derive_component(name: str) -> str:
    if not name:
        return DEFAULT_COMPONENT
    if name.startswith(MODULE_LOGGER_NAMESPACE):
        suffix = name[len(MODULE_LOGGER_NAMESPACE):].lstrip(".")
        return suffix or DEFAULT_COMPONENT
    return name


class StructuredLogger(logging.LoggerAdapter):
    """Adapter that tags every message with a ``[Component]`` prefix."""

    def __init__(self, logger: logging.Logger, component: Optional[str] = None) -> None:
        super().__init__(logger, {"component": component or _derive_component(logger.name)})

    @property
    def component(self) -> str:
        return self.extra["component"]

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[str, MutableMapping[str, Any]]:
        text = str(msg)
        tag = f"[{self.component}]"
        if not text.startswith(tag):
            text = f"{tag} {text}"
        return text, kwargs


LoggerLike = Union[logging.Logger, logging.LoggerAdapter, None]


def ensure_structured_logger(
    logger: LoggerLike,
    *,
    component: Optional[str] = None,
    fallback_name: Optional[str] = None,
) -> StructuredLogger:
    """Return a StructuredLogger wrapping ``logger`` (or a new module logger)."""

    if isinstance(logger, StructuredLogger):
        return logger
    if isinstance(logger, logging.LoggerAdapter):
        return StructuredLogger(logger.logger, component=component or _derive_component(logger.logger.name))
    if isinstance(logger, logging.Logger):
        return StructuredLogger(logger, component=component)

    if component:
        return StructuredLogger(logging.getLogger(_normalize_logger_name(fallback_name)), component=component)
    return get_module_logger(fallback_name)


def get_module_logger(name: Optional[str] = None) -> StructuredLogger:
    """Return a structured logger scoped to the orderdesk namespace."""
    normalized = _normalize_logger_name(name)
    return StructuredLogger(logging.getLogger(normalized))


__all__ = [
    "LoggerLike",
    "StructuredLogger",
    "ensure_structured_logger",
    "get_module_logger",
]
