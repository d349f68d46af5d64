"""Tests for Registry startup wiring."""

import pytest

from container_registry.models.containers import ContainerStatus
from container_registry.registry import Registry
from container_registry.utils.exceptions import MigrationError


@pytest.mark.asyncio
async def test_open_migrates_and_serves(settings, driver):
    """Test that an opened registry is ready for lifecycle calls."""
    registry = await Registry.open(settings, driver=driver)
    try:
        assert await registry.migrator.pending() == []

        await registry.containers.create("web-1", "alpine", {})
        started = await registry.containers.start("web-1")

        assert started.status == ContainerStatus.RUNNING
    finally:
        await registry.close()

    assert not registry.pool.is_open


@pytest.mark.asyncio
async def test_context_manager_reopens_existing_data(settings, driver):
    """Test that records persist across registry restarts."""
    async with Registry(settings, driver=driver) as registry:
        created = await registry.containers.create("web-1", "alpine", {})

    async with Registry(settings, driver=driver) as registry:
        effective = await registry.containers.get("web-1", live=False)

    assert effective.record.id == created.id


@pytest.mark.asyncio
async def test_open_closes_pool_when_migration_fails(settings, driver, raw_pool):
    """Test that a failed startup does not leak the pool."""
    async with raw_pool.transaction() as conn:
        await conn.exec_driver_sql("CREATE TABLE containers (id TEXT)")

    with pytest.raises(MigrationError):
        await Registry.open(settings, driver=driver)
