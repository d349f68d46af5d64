"""Docker client utilities for the runtime driver."""

import docker
from docker import DockerClient
from docker.errors import DockerException

from container_registry.config import Settings
from container_registry.utils.logging import get_logger

logger = get_logger(__name__)


class DockerClientManager:
    """Owns a lazily connected Docker client."""

    def __init__(self, settings: Settings) -> None:
        """
        Initialize Docker client manager.

        Args:
            settings: Application settings
        """
        self._client: DockerClient | None = None
        self.settings = settings

    def get_client(self) -> DockerClient:
        """
        Get or create Docker client instance.

        Returns:
            DockerClient instance

        Raises:
            DockerException: If unable to connect to Docker daemon
        """
        if self._client is None:
            timeout = max(1, int(self.settings.runtime_timeout_s))
            try:
                if self.settings.docker_host:
                    client = docker.DockerClient(
                        base_url=self.settings.docker_host, timeout=timeout
                    )
                else:
                    client = docker.from_env(timeout=timeout)

                client.ping()
                logger.info(
                    "Successfully connected to Docker daemon",
                    extra={"docker_host": self.settings.docker_host or "env"},
                )
            except DockerException as e:
                logger.error("Failed to connect to Docker daemon", extra={"error": str(e)})
                raise
            self._client = client

        return self._client

    def close(self) -> None:
        """Close Docker client connection."""
        if self._client:
            self._client.close()
            self._client = None
            logger.info("Docker client connection closed")
