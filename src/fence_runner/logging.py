"""Logging utilities."""

from __future__ import annotations

import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str = "INFO", *, rich_tracebacks: bool = True) -> None:
    """Configure the root logger for the CLI.

    Example:
        ```python
        configure_logging("DEBUG")
        ```
    """
    console = Console(stderr=True)
    handler = RichHandler(console=console, rich_tracebacks=rich_tracebacks, markup=False)
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str, *extra_names: str) -> logging.Logger:
    """Return a namespaced logger.

    Example:
        ```python
        logger = get_logger("fence_runner", "runner")
        ```
    """
    namespace = ".".join([name, *extra_names]) if extra_names else name
    return logging.getLogger(namespace)


def format_fields(fields: dict[str, Any]) -> str:
    """Render context fields as space separated key=value pairs.

    Example:
        ```python
        text = format_fields({"source": "README.md", "line": 12})
        ```
    """
    parts = []
    for key, value in fields.items():
        if isinstance(value, float):
            value = f"{value:.3f}s" if key == "time" else f"{value:g}"
        parts.append(f"{key}={value!r}" if isinstance(value, str) and " " in value else f"{key}={value}")
    return " ".join(parts)


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Log an event with structured context fields.

    The fields are attached to the record as ``record.fields`` and appended
    to the rendered message.

    Example:
        ```python
        log_event(logger, logging.INFO, "start", source="README.md", line=3)
        ```
    """
    if not logger.isEnabledFor(level):
        return
    if fields:
        logger.log(level, "%s %s", event, format_fields(fields), extra={"fields": fields})
    else:
        logger.log(level, "%s", event, extra={"fields": {}})


__all__ = ["configure_logging", "format_fields", "get_logger", "log_event"]
