"""Rich-backed logging for the datasource backend.

Everything logs under the ``tempo`` logger. Components take a child (``tempo.executor``, ``tempo.oauth``,
``tempo.http``) so query, credential and connection events can be filtered apart. Events are short snake_case
messages; context goes into ``extra=``.
"""

from __future__ import annotations

import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

Logger = logging.Logger

_ROOT_NAME = "tempo"
_logger: logging.Logger | None = None


def _install_handler() -> logging.Logger:
    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            RichHandler(
                console=Console(stderr=True),
                rich_tracebacks=True,
                show_time=True,
                show_level=True,
                show_path=False,
            )
        ],
    )
    return logging.getLogger(_ROOT_NAME)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the ``tempo`` logger, or its ``name`` child, installing the Rich handler on first use."""

    global _logger
    if _logger is None:
        _logger = _install_handler()
    return _logger.getChild(name) if name else _logger


def set_log_level(level: str | int) -> None:
    """Apply the configured level (``"DEBUG"`` shows outbound Tempo requests and pass-through decisions)."""

    get_logger().setLevel(level.upper() if isinstance(level, str) else level)


def log_structured(logger: Logger, event: str, **extra: Any) -> None:
    logger.info("%s", event, extra=extra)


__all__ = ["get_logger", "set_log_level", "log_structured", "Logger"]
