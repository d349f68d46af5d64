"""Versioned schema migrations applied at startup."""

from pathlib import Path
from typing import List

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Connection

from container_registry.models.database import ConnectionPool
from container_registry.utils import get_logger
from container_registry.utils.audit_logger import AuditEventType, AuditLogger
from container_registry.utils.exceptions import MigrationError, StorageUnavailableError

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"


class SchemaMigrator:
    """
    Brings the state database up to the newest schema revision.

    Steps are the Alembic revisions under ``container_registry/migrations``.
    Each one runs in its own transaction and the stored revision only moves
    forward when that transaction commits, so a failed run can simply be
    retried and will resume from the last committed step.
    """

    def __init__(self, pool: ConnectionPool, audit: AuditLogger | None = None) -> None:
        """
        Initialize schema migrator.

        Args:
            pool: Connection pool for the state database
            audit: Optional audit logger
        """
        self.pool = pool
        self.audit = audit

    def _config(self, connection: Connection | None = None) -> Config:
        cfg = Config()
        cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
        # ConfigParser interpolation treats % specially
        cfg.set_main_option("sqlalchemy.url", self.pool.url.replace("%", "%%"))
        cfg.attributes["connection"] = connection
        return cfg

    def revisions(self) -> List[str]:
        """
        All known revisions, oldest first.

        Returns:
            Ordered revision identifiers
        """
        script = ScriptDirectory.from_config(self._config())
        return [rev.revision for rev in script.walk_revisions()][::-1]

    def head_revision(self) -> str | None:
        """Newest revision shipped with the package."""
        return ScriptDirectory.from_config(self._config()).get_current_head()

    async def current_revision(self) -> str | None:
        """
        Revision recorded in the database.

        Returns:
            Revision identifier, or None for a database never migrated
        """
        async with self.pool.acquire() as conn:
            return await conn.run_sync(
                lambda sync_conn: MigrationContext.configure(sync_conn).get_current_revision()
            )

    async def pending(self) -> List[str]:
        """
        Revisions not yet applied, in the order they will run.

        Raises:
            MigrationError: If the database records a revision this package does not know
        """
        current = await self.current_revision()
        ordered = self.revisions()
        if current is None:
            return ordered
        if current not in ordered:
            raise MigrationError(current, ValueError(f"Unknown schema revision: {current}"))
        return ordered[ordered.index(current) + 1 :]

    async def upgrade(self, target: str = "head") -> List[str]:
        """
        Apply pending revisions in order, up to and including ``target``.

        Args:
            target: Revision to stop at; the newest one by default

        Returns:
            Revisions applied by this call (empty when already up to date)

        Raises:
            MigrationError: If any step fails (earlier steps stay committed) or
                ``target`` is not a known revision
        """
        current = await self.current_revision()
        pending = await self.pending()
        if target != "head":
            if target not in self.revisions():
                raise MigrationError(current, ValueError(f"Unknown schema revision: {target}"))
            pending = pending[: pending.index(target) + 1] if target in pending else []
        if not pending:
            logger.info("Database schema is up to date", extra={"revision": current})
            return []

        logger.info(
            "Applying schema migrations",
            extra={"from_revision": current, "pending": pending},
        )

        try:
            async with self.pool.acquire() as conn:
                await conn.run_sync(self._run_upgrade, target)
                await conn.commit()
        except Exception as e:
            reached = await self._revision_after_failure(current)
            logger.error(
                "Schema migration failed",
                extra={"revision": reached, "error": str(e)},
            )
            raise MigrationError(reached, e) from e

        head = await self.current_revision()
        logger.info("Schema migrations applied", extra={"revision": head, "applied": pending})
        if self.audit:
            self.audit.log_event(
                AuditEventType.SCHEMA_MIGRATE,
                source="migrator",
                details={"from_revision": current, "to_revision": head, "applied": pending},
            )
        return pending

    def _run_upgrade(self, connection: Connection, target: str) -> None:
        command.upgrade(self._config(connection), target)

    async def _revision_after_failure(self, fallback: str | None) -> str | None:
        try:
            return await self.current_revision()
        except StorageUnavailableError as e:
            logger.warning(
                "Could not read schema revision after failed migration",
                extra={"error": str(e)},
            )
            return fallback
