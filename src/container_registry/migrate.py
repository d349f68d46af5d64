"""Command-line entry point that brings the state database schema up to date."""

import asyncio
import sys

from container_registry.config import get_settings
from container_registry.models.database import ConnectionPool
from container_registry.models.migrator import SchemaMigrator
from container_registry.utils import get_logger, setup_logging
from container_registry.utils.audit_logger import AuditLogger
from container_registry.utils.exceptions import StorageUnavailableError

logger = get_logger(__name__)


async def run_migrations() -> list:
    """Open a pool from settings and apply pending migrations."""
    settings = get_settings()
    async with ConnectionPool(settings) as pool:
        return await SchemaMigrator(pool, audit=AuditLogger()).upgrade()


def main() -> None:
    """Main entry point for container-registry-migrate."""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, log_format=settings.log_format)

    try:
        applied = asyncio.run(run_migrations())
    except StorageUnavailableError as e:
        logger.error("Database migration failed", extra={"error": str(e)})
        sys.exit(1)

    logger.info("Database migrations completed", extra={"applied": applied})


if __name__ == "__main__":
    main()
