"""SQLAlchemy models and database plumbing for the container registry."""

from .base import Base
from .containers import Container, ContainerConfig, ContainerStatus, NetworkInterface
from .database import ConnectionPool

__all__ = [
    "Base",
    "Container",
    "ContainerConfig",
    "ContainerStatus",
    "ConnectionPool",
    "NetworkInterface",
]
