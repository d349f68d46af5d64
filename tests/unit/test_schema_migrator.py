"""Tests for SchemaMigrator."""

import pytest
from sqlalchemy import inspect, text

from container_registry.models.migrator import SchemaMigrator
from container_registry.utils.exceptions import MigrationError, StorageUnavailableError


async def _table_names(pool):
    async with pool.acquire() as conn:
        return await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())


@pytest.mark.asyncio
async def test_upgrade_applies_all_revisions_in_order(raw_pool):
    """Test that a fresh database is brought to head."""
    migrator = SchemaMigrator(raw_pool)

    assert await migrator.current_revision() is None
    assert await migrator.pending() == ["0001", "0002"]

    applied = await migrator.upgrade()

    assert applied == ["0001", "0002"]
    assert await migrator.current_revision() == migrator.head_revision() == "0002"
    assert await migrator.pending() == []
    assert "containers" in await _table_names(raw_pool)


@pytest.mark.asyncio
async def test_upgrade_is_noop_when_up_to_date(raw_pool):
    """Test that re-running migrations changes nothing."""
    migrator = SchemaMigrator(raw_pool)
    await migrator.upgrade()

    assert await migrator.upgrade() == []
    assert await migrator.current_revision() == "0002"


@pytest.mark.asyncio
async def test_listing_indexes_are_created(pool):
    """Test that status and created_at are indexed."""
    async with pool.acquire() as conn:
        indexes = await conn.run_sync(
            lambda sync_conn: inspect(sync_conn).get_indexes("containers")
        )

    names = {index["name"] for index in indexes}
    assert {"ix_containers_status", "ix_containers_created_at"} <= names


@pytest.mark.asyncio
async def test_status_column_rejects_unknown_values(pool):
    """Test that the CHECK constraint keeps status inside the enum."""
    with pytest.raises(StorageUnavailableError):
        async with pool.transaction() as conn:
            await conn.execute(
                text(
                    "INSERT INTO containers "
                    "(id, name, status, template, config, created_at, updated_at) "
                    "VALUES ('x', 'bad', 'exploded', 'alpine', '{}', "
                    "'2025-01-01 00:00:00', '2025-01-01 00:00:00')"
                )
            )


@pytest.mark.asyncio
async def test_failed_step_leaves_revision_and_retry_resumes(raw_pool):
    """Test that a failing step keeps the stored revision and can be retried."""
    migrator = SchemaMigrator(raw_pool)

    # A stray table makes the first step fail
    async with raw_pool.transaction() as conn:
        await conn.execute(text("CREATE TABLE containers (id TEXT)"))

    with pytest.raises(MigrationError) as exc_info:
        await migrator.upgrade()

    assert exc_info.value.revision is None
    assert await migrator.current_revision() is None

    async with raw_pool.transaction() as conn:
        await conn.execute(text("DROP TABLE containers"))

    assert await migrator.upgrade() == ["0001", "0002"]
    assert await migrator.current_revision() == "0002"


@pytest.mark.asyncio
async def test_unknown_revision_is_reported(pool):
    """Test that a database ahead of this package is refused."""
    async with pool.transaction() as conn:
        await conn.execute(text("UPDATE alembic_version SET version_num = 'ffff'"))

    with pytest.raises(MigrationError) as exc_info:
        await SchemaMigrator(pool).pending()

    assert exc_info.value.revision == "ffff"


async def _index_names(pool):
    async with pool.acquire() as conn:
        indexes = await conn.run_sync(
            lambda sync_conn: inspect(sync_conn).get_indexes("containers")
        )
    return {index["name"] for index in indexes}


@pytest.mark.asyncio
async def test_upgrade_to_target_revision(raw_pool):
    """Test that upgrade can stop at an intermediate revision."""
    migrator = SchemaMigrator(raw_pool)

    assert await migrator.upgrade("0001") == ["0001"]
    assert await migrator.current_revision() == "0001"
    assert await migrator.pending() == ["0002"]
    assert await migrator.upgrade("0001") == []

    with pytest.raises(MigrationError):
        await migrator.upgrade("ffff")


@pytest.mark.asyncio
async def test_failed_step_rolls_back_its_earlier_statements(raw_pool):
    """Test that a step failing midway leaves none of its DDL behind."""
    migrator = SchemaMigrator(raw_pool)
    await migrator.upgrade("0001")

    # The second statement of 0002 collides with this index
    async with raw_pool.transaction() as conn:
        await conn.execute(
            text("CREATE INDEX ix_containers_created_at ON containers (created_at)")
        )

    with pytest.raises(MigrationError) as exc_info:
        await migrator.upgrade()

    assert exc_info.value.revision == "0001"
    assert await migrator.current_revision() == "0001"
    assert "ix_containers_status" not in await _index_names(raw_pool)

    async with raw_pool.transaction() as conn:
        await conn.execute(text("DROP INDEX ix_containers_created_at"))

    assert await migrator.upgrade() == ["0002"]
    assert {"ix_containers_status", "ix_containers_created_at"} <= await _index_names(raw_pool)


@pytest.mark.asyncio
async def test_rolled_back_transaction_discards_ddl(raw_pool):
    """Test that schema changes inside a failed transaction do not persist."""
    with pytest.raises(RuntimeError):
        async with raw_pool.transaction() as conn:
            await conn.execute(text("CREATE TABLE scratch (id INTEGER)"))
            raise RuntimeError("abort")

    assert "scratch" not in await _table_names(raw_pool)
