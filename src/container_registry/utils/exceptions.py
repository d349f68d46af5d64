"""Custom exceptions for the container registry."""

from typing import Sequence


class ContainerRegistryError(Exception):
    """Base exception for container registry errors."""

    pass


class ValidationFailedError(ContainerRegistryError):
    """Exception raised when a create/update request fails validation."""

    def __init__(self, violations: Sequence) -> None:
        """
        Initialize ValidationFailedError.

        Args:
            violations: Every violation found, each with ``field`` and ``reason``
        """
        self.violations = list(violations)
        details = "; ".join(f"{v.field}: {v.reason}" for v in self.violations)
        super().__init__(f"Validation failed: {details}")


class ContainerError(ContainerRegistryError):
    """Base exception for container record errors."""

    pass


class ContainerNotFoundError(ContainerError):
    """Exception raised when a container record is not found."""

    def __init__(self, identifier: str) -> None:
        """
        Initialize ContainerNotFoundError.

        Args:
            identifier: Container name or ID that was not found
        """
        self.identifier = identifier
        super().__init__(f"Container not found: {identifier}")


class ContainerAlreadyExistsError(ContainerError):
    """Exception raised by a non-idempotent create when the name is taken."""

    def __init__(self, name: str) -> None:
        """
        Initialize ContainerAlreadyExistsError.

        Args:
            name: Name that already exists
        """
        self.name = name
        super().__init__(f"Container '{name}' already exists")


class StorageUnavailableError(ContainerRegistryError):
    """Exception raised when the state database cannot serve a request."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        """
        Initialize StorageUnavailableError.

        Args:
            message: Error message
            original_error: Original exception from the database layer
        """
        self.original_error = original_error
        super().__init__(message)


class PoolExhaustedError(StorageUnavailableError):
    """Exception raised when no pooled connection frees up in time."""

    def __init__(self, timeout_s: float, original_error: Exception | None = None) -> None:
        """
        Initialize PoolExhaustedError.

        Args:
            timeout_s: How long acquisition waited
            original_error: Original pool timeout exception
        """
        self.timeout_s = timeout_s
        super().__init__(
            f"Connection pool exhausted after waiting {timeout_s} seconds", original_error
        )


class StorageTimeoutError(StorageUnavailableError):
    """Exception raised when a storage operation exceeds its deadline."""

    def __init__(self, operation: str, timeout_s: float) -> None:
        """
        Initialize StorageTimeoutError.

        Args:
            operation: Name of the operation that timed out
            timeout_s: Deadline in seconds
        """
        self.operation = operation
        self.timeout_s = timeout_s
        super().__init__(f"Storage operation '{operation}' timed out after {timeout_s} seconds")


class MigrationError(StorageUnavailableError):
    """Exception raised when a schema migration step fails."""

    def __init__(self, revision: str | None, original_error: Exception | None = None) -> None:
        """
        Initialize MigrationError.

        Args:
            revision: Last committed schema revision (None for an empty database)
            original_error: Exception raised by the failing step
        """
        self.revision = revision
        super().__init__(
            f"Schema migration failed; database remains at revision {revision or 'base'}",
            original_error,
        )


class RuntimeUnavailableError(ContainerRegistryError):
    """Exception raised when the container runtime cannot be reached."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        """
        Initialize RuntimeUnavailableError.

        Args:
            message: Error message
            original_error: Original exception from the runtime driver
        """
        self.original_error = original_error
        super().__init__(message)
