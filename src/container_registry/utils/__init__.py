"""Utility helpers for the container registry."""

from .logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
