"""Tests for ConnectionPool."""

import pytest
from sqlalchemy import text

from container_registry.models.database import ConnectionPool
from container_registry.utils.exceptions import PoolExhaustedError, StorageUnavailableError
from container_registry.utils.metrics_collector import MetricsCollector


@pytest.mark.asyncio
async def test_acquire_returns_usable_connection(raw_pool):
    """Test that an acquired connection can run statements."""
    async with raw_pool.acquire() as conn:
        result = await conn.execute(text("SELECT 1"))
        assert result.scalar_one() == 1


@pytest.mark.asyncio
async def test_connection_released_after_block(raw_pool):
    """Test that the connection goes back to the pool on normal exit."""
    async with raw_pool.acquire():
        assert raw_pool.status()["checked_out"] == 1

    assert raw_pool.status()["checked_out"] == 0


@pytest.mark.asyncio
async def test_connection_released_on_error(raw_pool):
    """Test that the connection goes back to the pool when the block raises."""
    with pytest.raises(RuntimeError):
        async with raw_pool.acquire():
            raise RuntimeError("boom")

    assert raw_pool.status()["checked_out"] == 0


@pytest.mark.asyncio
async def test_pool_exhaustion_raises_after_bounded_wait(settings):
    """Test that acquiring beyond pool_size fails with PoolExhaustedError."""
    metrics = MetricsCollector()
    small = settings.model_copy(update={"pool_size": 1, "pool_timeout_s": 0.2})

    async with ConnectionPool(small, metrics=metrics) as pool:
        async with pool.acquire():
            with pytest.raises(PoolExhaustedError) as exc_info:
                async with pool.acquire():
                    pass

        assert exc_info.value.timeout_s == 0.2
        assert isinstance(exc_info.value, StorageUnavailableError)
        assert metrics.registry.get_sample_value("container_registry_pool_exhausted_total") == 1

        # The held connection was released, so the pool works again
        async with pool.acquire() as conn:
            assert (await conn.execute(text("SELECT 1"))).scalar_one() == 1


@pytest.mark.asyncio
async def test_pool_never_grows_past_size(settings):
    """Test that the pool holds at most pool_size connections."""
    small = settings.model_copy(update={"pool_size": 2, "pool_timeout_s": 0.2})

    async with ConnectionPool(small) as pool:
        async with pool.acquire(), pool.acquire():
            status = pool.status()
            assert status["checked_out"] == 2
            assert status["overflow"] <= 0

            with pytest.raises(PoolExhaustedError):
                async with pool.acquire():
                    pass


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(raw_pool):
    """Test that transaction() discards writes when the block fails."""
    async with raw_pool.transaction() as conn:
        await conn.execute(text("CREATE TABLE scratch (v INTEGER)"))

    with pytest.raises(RuntimeError):
        async with raw_pool.transaction() as conn:
            await conn.execute(text("INSERT INTO scratch (v) VALUES (1)"))
            raise RuntimeError("abort")

    async with raw_pool.acquire() as conn:
        count = (await conn.execute(text("SELECT COUNT(*) FROM scratch"))).scalar_one()
    assert count == 0


@pytest.mark.asyncio
async def test_statement_errors_become_storage_unavailable(raw_pool):
    """Test that SQL failures surface as StorageUnavailableError."""
    with pytest.raises(StorageUnavailableError):
        async with raw_pool.acquire() as conn:
            await conn.execute(text("SELECT * FROM no_such_table"))

    assert raw_pool.status()["checked_out"] == 0


@pytest.mark.asyncio
async def test_closed_pool_refuses_acquire(settings):
    """Test that a pool must be open before use."""
    pool = ConnectionPool(settings)

    assert not pool.is_open
    assert pool.status()["open"] is False
    with pytest.raises(StorageUnavailableError):
        async with pool.acquire():
            pass

    pool.open()
    assert pool.is_open
    await pool.close()
    assert not pool.is_open


@pytest.mark.asyncio
async def test_open_creates_database_directory(settings, tmp_path):
    """Test that the SQLite parent directory is created on open."""
    nested = settings.model_copy(update={"state_db": str(tmp_path / "a" / "b" / "state.db")})

    async with ConnectionPool(nested) as pool:
        async with pool.acquire() as conn:
            await conn.execute(text("SELECT 1"))

    assert (tmp_path / "a" / "b").is_dir()
