"""Container lifecycle manager consumed by the API layer."""

import asyncio
from typing import List

from container_registry.managers.reconciliation_manager import (
    EffectiveStatus,
    ReadFreshness,
    ReconciliationManager,
)
from container_registry.models.containers import Container, ContainerStatus
from container_registry.repositories.containers import (
    ConfigInput,
    ContainerFilter,
    ContainerStore,
)
from container_registry.runtime import RuntimeDriver
from container_registry.utils import get_logger
from container_registry.utils.exceptions import RuntimeUnavailableError
from container_registry.validation import ensure_valid

logger = get_logger(__name__)


class ContainerManager:
    """
    Entry point for create/get/list/start/stop/delete.

    Requests pass the validation gate before touching storage. Lifecycle
    commands go to the runtime driver and are followed by a forced live
    read so the stored status reflects what the runtime now reports.
    """

    def __init__(
        self,
        store: ContainerStore,
        reconciler: ReconciliationManager,
        driver: RuntimeDriver,
    ) -> None:
        """
        Initialize container manager.

        Args:
            store: Container record store
            reconciler: Reconciliation manager for live status
            driver: Runtime driver used for lifecycle commands
        """
        self.store = store
        self.reconciler = reconciler
        self.driver = driver

    async def create(self, name: str, template: str, config: ConfigInput) -> Container:
        """
        Create a container record, or return the existing one for this name.

        Raises:
            ValidationFailedError: If name, template or limits are invalid
        """
        ensure_valid(name, template, config)
        return await self.store.get_or_create(name, template, config)

    async def get(self, name: str, live: bool = True) -> EffectiveStatus:
        """
        Get a container with its effective status.

        Args:
            name: Container name
            live: Check the runtime (possibly via the short-lived cache)

        Raises:
            ContainerNotFoundError: If no record has this name
        """
        if live:
            return await self.reconciler.effective_status(name)
        record = await self.store.get_by_name(name)
        return EffectiveStatus(record=record, status=record.status, freshness=ReadFreshness.STORED)

    async def list(
        self, filter: ContainerFilter | None = None, live: bool = False
    ) -> List[EffectiveStatus]:
        """
        List containers, oldest first.

        Args:
            filter: Optional status/template/node narrowing
            live: Check each container against the runtime
        """
        if live:
            return [effective async for effective in self.reconciler.list_effective(filter)]
        return [
            EffectiveStatus(record=record, status=record.status, freshness=ReadFreshness.STORED)
            async for record in self.store.list(filter)
        ]

    async def start(self, name: str) -> EffectiveStatus:
        """
        Start a container and return its freshly observed status.

        Raises:
            ContainerNotFoundError: If no record has this name
            RuntimeUnavailableError: If the runtime rejected or missed the command
        """
        return await self._run_command(name, "start", ContainerStatus.STARTING)

    async def stop(self, name: str) -> EffectiveStatus:
        """
        Stop a container and return its freshly observed status.

        Raises:
            ContainerNotFoundError: If no record has this name
            RuntimeUnavailableError: If the runtime rejected or missed the command
        """
        return await self._run_command(name, "stop", ContainerStatus.STOPPING)

    async def delete(self, name: str) -> None:
        """
        Remove a container from the runtime and delete its record.

        Raises:
            ContainerNotFoundError: If no record has this name
            RuntimeUnavailableError: If the runtime could not remove it
        """
        await self.store.get_by_name(name)
        await self._issue(name, "destroy")
        try:
            await self.store.delete(name)
        finally:
            self.reconciler.invalidate(name)
        logger.info("Container deleted", extra={"container_name": name})

    async def _run_command(
        self, name: str, command: str, transitional: ContainerStatus
    ) -> EffectiveStatus:
        await self.store.update_status(name, transitional, source="lifecycle")
        self.reconciler.invalidate(name)

        try:
            await self._issue(name, command)
        except RuntimeUnavailableError as e:
            logger.error(
                "Lifecycle command failed",
                extra={"container_name": name, "command": command, "error": str(e)},
            )
            await self.store.update_status(name, ContainerStatus.ERROR, source="lifecycle")
            raise

        logger.info("Lifecycle command issued", extra={"container_name": name, "command": command})
        return await self.reconciler.after_lifecycle_command(name)

    async def _issue(self, name: str, command: str) -> None:
        """Send one lifecycle command to the runtime under the runtime deadline."""
        timeout = self.reconciler.settings.runtime_timeout_s
        try:
            await asyncio.wait_for(getattr(self.driver, command)(name), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise RuntimeUnavailableError(
                f"Runtime {command} for '{name}' timed out after {timeout} seconds", e
            ) from e
