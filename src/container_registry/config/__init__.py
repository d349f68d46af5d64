"""Configuration module for the container registry."""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
