"""Metadata persistence and status reconciliation for managed containers."""

from container_registry.config import Settings, get_settings
from container_registry.managers import (
    ContainerManager,
    EffectiveStatus,
    ReadFreshness,
    ReconciliationManager,
)
from container_registry.models import (
    ConnectionPool,
    Container,
    ContainerConfig,
    ContainerStatus,
    NetworkInterface,
)
from container_registry.models.migrator import SchemaMigrator
from container_registry.registry import Registry
from container_registry.repositories import ContainerFilter, ContainerStore
from container_registry.validation import Violation, validate

__version__ = "0.1.0"

__all__ = [
    "ConnectionPool",
    "Container",
    "ContainerConfig",
    "ContainerFilter",
    "ContainerManager",
    "ContainerStatus",
    "ContainerStore",
    "EffectiveStatus",
    "NetworkInterface",
    "ReadFreshness",
    "ReconciliationManager",
    "Registry",
    "SchemaMigrator",
    "Settings",
    "Violation",
    "get_settings",
    "validate",
]
