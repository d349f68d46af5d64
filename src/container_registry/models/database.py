"""Database connection pool for the container registry."""

import os
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncGenerator, Generator

from sqlalchemy import event
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

from container_registry.config import Settings
from container_registry.utils import get_logger
from container_registry.utils.exceptions import (
    PoolExhaustedError,
    StorageUnavailableError,
)
from container_registry.utils.metrics_collector import MetricsCollector

logger = get_logger(__name__)


class ConnectionPool:
    """
    Bounded pool of database connections.

    Wraps a single async engine whose queue pool never grows past
    ``settings.pool_size``. Connections are probed on checkout and replaced
    when the probe fails. Construct one per process at startup and pass it to
    every component that needs storage.
    """

    def __init__(self, settings: Settings, metrics: MetricsCollector | None = None) -> None:
        """
        Initialize connection pool.

        Args:
            settings: Application settings
            metrics: Optional metrics collector
        """
        self.settings = settings
        self.metrics = metrics
        self._engine: AsyncEngine | None = None
        self._session_maker: async_sessionmaker[AsyncSession] | None = None

    @property
    def url(self) -> str:
        """Database URL this pool connects to."""
        return self.settings.database_url

    @property
    def is_open(self) -> bool:
        """Whether the underlying engine has been created."""
        return self._engine is not None

    def open(self) -> "ConnectionPool":
        """
        Create the engine and session maker.

        Returns:
            The pool itself
        """
        if self._engine is not None:
            return self

        url = make_url(self.url)
        connect_args: dict = {}
        if url.get_backend_name() == "sqlite":
            self._ensure_sqlite_parent(url.database)
            # Busy timeout so concurrent writers wait on the file lock instead of failing
            connect_args["timeout"] = self.settings.statement_timeout_s

        self._engine = create_async_engine(
            url,
            poolclass=AsyncAdaptedQueuePool,
            pool_size=self.settings.pool_size,
            max_overflow=0,
            pool_timeout=self.settings.pool_timeout_s,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        if url.get_backend_name() == "sqlite":
            _enable_sqlite_transactional_ddl(self._engine)
        self._session_maker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info(
            "Connection pool created",
            extra={
                "db_url": url.render_as_string(hide_password=True),
                "pool_size": self.settings.pool_size,
            },
        )
        return self

    async def close(self) -> None:
        """Dispose of every pooled connection."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_maker = None
            logger.info("Connection pool closed")

    async def __aenter__(self) -> "ConnectionPool":
        return self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def engine(self) -> AsyncEngine:
        """
        Engine backing this pool.

        Raises:
            StorageUnavailableError: If the pool is not open
        """
        if self._engine is None:
            raise StorageUnavailableError("Connection pool is not open")
        return self._engine

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[AsyncConnection, None]:
        """
        Check out a connection for the duration of the block.

        The connection goes back to the pool on every exit path.

        Yields:
            AsyncConnection instance

        Raises:
            PoolExhaustedError: If no connection frees up within pool_timeout_s
            StorageUnavailableError: If the connection or a statement fails
        """
        engine = self.engine
        with self.storage_errors():
            async with engine.connect() as conn:
                yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncConnection, None]:
        """
        Check out a connection and run the block in one transaction.

        Yields:
            AsyncConnection with an open transaction
        """
        async with self.acquire() as conn:
            async with conn.begin():
                yield conn

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get an ORM session that commits on success and rolls back on error.

        The session checks a connection out of this pool lazily and returns it
        on close. Database errors are not translated here so callers can react
        to specific ones such as ``IntegrityError``.

        Yields:
            AsyncSession instance
        """
        if self._session_maker is None:
            raise StorageUnavailableError("Connection pool is not open")
        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    @contextmanager
    def storage_errors(self) -> Generator[None, None, None]:
        """
        Translate database failures raised inside the block.

        Raises:
            PoolExhaustedError: For a pool checkout timeout
            StorageUnavailableError: For any other SQLAlchemy or OS level error
        """
        try:
            yield
        except StorageUnavailableError:
            raise
        except sa_exc.TimeoutError as e:
            if self.metrics:
                self.metrics.record_pool_exhausted()
            logger.warning(
                "Connection pool exhausted",
                extra={"timeout_s": self.settings.pool_timeout_s, **self.status()},
            )
            raise PoolExhaustedError(self.settings.pool_timeout_s, e) from e
        except (sa_exc.SQLAlchemyError, OSError) as e:
            logger.error("Storage operation failed", extra={"error": str(e)})
            raise StorageUnavailableError(f"Storage unavailable: {e}", e) from e

    def status(self) -> dict:
        """
        Describe current pool usage.

        Returns:
            Dictionary with size, checked_out and overflow counts
        """
        if self._engine is None:
            return {"open": False, "size": self.settings.pool_size, "checked_out": 0, "overflow": 0}
        pool = self._engine.pool
        return {
            "open": True,
            "size": pool.size(),
            "checked_out": pool.checkedout(),
            "overflow": pool.overflow(),
        }

    @staticmethod
    def _ensure_sqlite_parent(database: str | None) -> None:
        """Create the directory holding a file-backed SQLite database."""
        if not database or database == ":memory:" or database.startswith("file:"):
            return
        parent = os.path.dirname(os.path.abspath(database))
        if parent and not os.path.exists(parent):
            os.makedirs(parent, exist_ok=True)



def _enable_sqlite_transactional_ddl(engine: AsyncEngine) -> None:
    """
    Make SQLite transactions cover DDL as well as DML.

    The sqlite3 driver only opens a transaction implicitly before DML, so a
    failed CREATE/DROP would otherwise stay applied after rollback. Turning
    off the driver's own transaction handling and emitting BEGIN from the
    engine puts every statement of a transaction under the same rollback.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")
