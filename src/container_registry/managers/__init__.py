"""Managers for container lifecycle and status reconciliation."""

from .container_manager import ContainerManager
from .reconciliation_manager import (
    EffectiveStatus,
    ReadFreshness,
    ReconciliationManager,
    map_runtime_state,
)

__all__ = [
    "ContainerManager",
    "EffectiveStatus",
    "ReadFreshness",
    "ReconciliationManager",
    "map_runtime_state",
]
