"""Repository pattern implementations for data access."""

from .containers import ContainerFilter, ContainerListing, ContainerStore

__all__ = ["ContainerFilter", "ContainerListing", "ContainerStore"]
