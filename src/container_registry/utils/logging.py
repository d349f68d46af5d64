"""Logging utilities for the container registry."""

import logging
import sys
from typing import TextIO

from pythonjsonlogger import jsonlogger

# Marks handlers installed here so a later call replaces only those
_OWNED_HANDLER_ATTR = "_container_registry_handler"


def setup_logging(
    log_level: str = "INFO", log_format: str = "json", stream: TextIO | None = None
) -> logging.Handler:
    """
    Install the registry's log handler on the root logger.

    Calling it again swaps the previous registry handler for a new one and
    leaves handlers owned by the host application alone.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format type (json or text)
        stream: Where records are written; stdout by default

    Returns:
        The installed handler
    """
    level = getattr(logging, log_level.upper())
    root = logging.getLogger()
    root.setLevel(level)

    for existing in [h for h in root.handlers if getattr(h, _OWNED_HANDLER_ATTR, False)]:
        root.removeHandler(existing)
        existing.close()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)

    if log_format.lower() == "json":
        # Fields passed via ``extra`` (container_name, status, ...) become JSON keys
        formatter = jsonlogger.JsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "timestamp"},
            timestamp=True,
        )
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler.setFormatter(formatter)
    setattr(handler, _OWNED_HANDLER_ATTR, True)
    root.addHandler(handler)
    return handler


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the given name.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
