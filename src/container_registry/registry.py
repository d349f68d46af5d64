"""Composition root wiring the registry components together."""

from container_registry.config import Settings, get_settings
from container_registry.managers.container_manager import ContainerManager
from container_registry.managers.reconciliation_manager import ReconciliationManager
from container_registry.models.database import ConnectionPool
from container_registry.models.migrator import SchemaMigrator
from container_registry.repositories.containers import ContainerStore
from container_registry.runtime import DockerRuntimeDriver, RuntimeDriver
from container_registry.utils import get_logger
from container_registry.utils.audit_logger import AuditLogger
from container_registry.utils.metrics_collector import MetricsCollector

logger = get_logger(__name__)


class Registry:
    """
    Owns one instance of every component for the life of the process.

    Build it once at startup with ``Registry.open()`` and ``close()`` it on
    shutdown; pass its members to whatever serves requests.
    """

    def __init__(
        self,
        settings: Settings,
        driver: RuntimeDriver | None = None,
        metrics: MetricsCollector | None = None,
        audit: AuditLogger | None = None,
    ) -> None:
        """
        Initialize registry components without touching the database.

        Args:
            settings: Application settings
            driver: Runtime driver; Docker-backed by default
            metrics: Metrics collector; a private one by default
            audit: Audit logger; a fresh one by default
        """
        self.settings = settings
        self.metrics = metrics or MetricsCollector()
        self.audit = audit or AuditLogger()
        self.driver = driver or DockerRuntimeDriver(settings)
        self.pool = ConnectionPool(settings, metrics=self.metrics)
        self.migrator = SchemaMigrator(self.pool, audit=self.audit)
        self.store = ContainerStore(self.pool, settings, audit=self.audit)
        self.reconciler = ReconciliationManager(
            self.store, self.driver, settings, metrics=self.metrics, audit=self.audit
        )
        self.containers = ContainerManager(self.store, self.reconciler, self.driver)

    @classmethod
    async def open(
        cls,
        settings: Settings | None = None,
        driver: RuntimeDriver | None = None,
        metrics: MetricsCollector | None = None,
        audit: AuditLogger | None = None,
    ) -> "Registry":
        """
        Build the registry, open the pool and migrate the schema.

        Raises:
            MigrationError: If the schema cannot be brought up to date
        """
        registry = cls(settings or get_settings(), driver=driver, metrics=metrics, audit=audit)
        registry.pool.open()
        try:
            await registry.migrator.upgrade()
        except Exception:
            await registry.pool.close()
            raise
        logger.info("Container registry ready", extra=registry.pool.status())
        return registry

    async def close(self) -> None:
        """Release the pool and the runtime client."""
        await self.pool.close()
        close_driver = getattr(self.driver, "close", None)
        if close_driver is not None:
            close_driver()
        logger.info("Container registry closed")

    async def __aenter__(self) -> "Registry":
        if not self.pool.is_open:
            self.pool.open()
            await self.migrator.upgrade()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
