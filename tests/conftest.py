"""Test configuration and fixtures."""

import asyncio
import io
import logging
from typing import AsyncGenerator, Dict, Generator, List, Optional, Tuple

import pytest

from container_registry.config import Settings
from container_registry.managers.container_manager import ContainerManager
from container_registry.managers.reconciliation_manager import ReconciliationManager
from container_registry.models.database import ConnectionPool
from container_registry.models.migrator import SchemaMigrator
from container_registry.repositories.containers import ContainerStore
from container_registry.utils import setup_logging
from container_registry.utils.exceptions import RuntimeUnavailableError
from container_registry.utils.metrics_collector import MetricsCollector


class FakeRuntimeDriver:
    """In-memory runtime driver recording every call."""

    def __init__(self) -> None:
        self.states: Dict[str, str] = {}
        self.queries: List[str] = []
        self.commands: List[Tuple[str, str]] = []
        self.unavailable = False
        self.delay = 0.0

    async def query_state(self, name: str) -> Optional[str]:
        self.queries.append(name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.unavailable:
            raise RuntimeUnavailableError("runtime unreachable")
        return self.states.get(name)

    async def _command(self, command: str, name: str) -> None:
        self.commands.append((command, name))
        if self.unavailable:
            raise RuntimeUnavailableError(f"runtime refused {command}")

    async def start(self, name: str) -> None:
        await self._command("start", name)
        self.states[name] = "RUNNING"

    async def stop(self, name: str) -> None:
        await self._command("stop", name)
        self.states[name] = "STOPPED"

    async def destroy(self, name: str) -> None:
        await self._command("destroy", name)
        self.states.pop(name, None)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway file-backed database."""
    return Settings(
        _env_file=None,
        state_db=str(tmp_path / "state.db"),
        pool_size=5,
        pool_timeout_s=5.0,
        statement_timeout_s=5.0,
        runtime_timeout_s=0.5,
        status_cache_ttl_s=3.0,
    )


@pytest.fixture(autouse=True)
def log_output(settings) -> Generator[io.StringIO, None, None]:
    """Install the production log handler so every log call is formatted."""
    root = logging.getLogger()
    previous_level = root.level
    output = io.StringIO()
    handler = setup_logging(settings.log_level, settings.log_format, stream=output)
    yield output
    root.removeHandler(handler)
    root.setLevel(previous_level)


@pytest.fixture
async def raw_pool(settings) -> AsyncGenerator[ConnectionPool, None]:
    """Open pool over an empty, unmigrated database."""
    pool = ConnectionPool(settings, metrics=MetricsCollector()).open()
    yield pool
    await pool.close()


@pytest.fixture
async def pool(raw_pool) -> ConnectionPool:
    """Open pool over a fully migrated database."""
    await SchemaMigrator(raw_pool).upgrade()
    return raw_pool


@pytest.fixture
def store(pool, settings) -> ContainerStore:
    """Container store backed by the migrated test database."""
    return ContainerStore(pool, settings)


@pytest.fixture
def driver() -> FakeRuntimeDriver:
    """Fake runtime driver."""
    return FakeRuntimeDriver()


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector with its own registry."""
    return MetricsCollector()


@pytest.fixture
def reconciler(store, driver, settings, metrics) -> ReconciliationManager:
    """Reconciliation manager wired to the fake driver."""
    return ReconciliationManager(store, driver, settings, metrics=metrics)


@pytest.fixture
def manager(store, reconciler, driver) -> ContainerManager:
    """Container manager wired to the fake driver."""
    return ContainerManager(store, reconciler, driver)
