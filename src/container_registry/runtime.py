"""Container runtime driver boundary."""

import asyncio
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from docker import DockerClient
from docker.errors import DockerException, NotFound
from requests.exceptions import RequestException

from container_registry.config import Settings
from container_registry.utils import get_logger
from container_registry.utils.docker_client import DockerClientManager
from container_registry.utils.exceptions import RuntimeUnavailableError

logger = get_logger(__name__)


@runtime_checkable
class RuntimeDriver(Protocol):
    """Operations the registry needs from a container runtime."""

    async def query_state(self, name: str) -> Optional[str]:
        """
        Report the runtime's raw state string for a container.

        Returns:
            Free-form state text, or None when the runtime has no such container

        Raises:
            RuntimeUnavailableError: If the runtime cannot be reached
        """
        ...

    async def start(self, name: str) -> None:
        """Start a container."""
        ...

    async def stop(self, name: str) -> None:
        """Stop a container."""
        ...

    async def destroy(self, name: str) -> None:
        """Remove a container; a missing container is not an error."""
        ...


class DockerRuntimeDriver:
    """Runtime driver backed by the Docker daemon."""

    def __init__(self, settings: Settings, client: DockerClient | None = None) -> None:
        """
        Initialize Docker runtime driver.

        Args:
            settings: Application settings
            client: Pre-built Docker client; connected lazily from settings otherwise
        """
        self.settings = settings
        self._client_manager = DockerClientManager(settings)
        self._client = client

    def _get_client(self) -> DockerClient:
        if self._client is None:
            self._client = self._client_manager.get_client()
        return self._client

    async def _call(self, operation: str, name: str, func: Callable[[DockerClient], Any]) -> Any:
        """Run a blocking Docker call in a worker thread under the runtime deadline."""
        timeout = self.settings.runtime_timeout_s

        def _invoke() -> Any:
            return func(self._get_client())

        try:
            return await asyncio.wait_for(asyncio.to_thread(_invoke), timeout=timeout)
        except NotFound:
            raise
        except asyncio.TimeoutError as e:
            logger.warning(
                "Docker call timed out",
                extra={"operation": operation, "container_name": name, "timeout_s": timeout},
            )
            raise RuntimeUnavailableError(
                f"Docker {operation} for '{name}' timed out after {timeout} seconds", e
            ) from e
        except (DockerException, RequestException) as e:
            logger.warning(
                "Docker call failed",
                extra={"operation": operation, "container_name": name, "error": str(e)},
            )
            raise RuntimeUnavailableError(f"Docker {operation} for '{name}' failed: {e}", e) from e

    async def _command(
        self, operation: str, name: str, func: Callable[[DockerClient], Any]
    ) -> None:
        try:
            await self._call(operation, name, func)
        except NotFound as e:
            raise RuntimeUnavailableError(f"Docker has no container named '{name}'", e) from e

    async def query_state(self, name: str) -> Optional[str]:
        try:
            return await self._call(
                "inspect", name, lambda client: client.containers.get(name).status
            )
        except NotFound:
            return None

    async def start(self, name: str) -> None:
        await self._command("start", name, lambda client: client.containers.get(name).start())
        logger.info("Docker container started", extra={"container_name": name})

    async def stop(self, name: str) -> None:
        await self._command("stop", name, lambda client: client.containers.get(name).stop())
        logger.info("Docker container stopped", extra={"container_name": name})

    async def destroy(self, name: str) -> None:
        try:
            await self._call(
                "remove", name, lambda client: client.containers.get(name).remove(force=True)
            )
        except NotFound:
            logger.info("Docker container already absent", extra={"container_name": name})
            return
        logger.info("Docker container removed", extra={"container_name": name})

    def close(self) -> None:
        """Close the Docker client connection."""
        self._client_manager.close()
