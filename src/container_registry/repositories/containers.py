"""Record store for container metadata."""

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, List, Mapping, TypeVar
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import Select, and_, case, delete, func, literal, or_, select, update
from sqlalchemy.exc import IntegrityError

from container_registry.config import Settings
from container_registry.models.base import UTCDateTime, utc_now
from container_registry.models.containers import Container, ContainerConfig, ContainerStatus
from container_registry.models.database import ConnectionPool
from container_registry.utils import get_logger
from container_registry.utils.audit_logger import AuditEventType, AuditLogger
from container_registry.utils.exceptions import (
    ContainerNotFoundError,
    StorageTimeoutError,
    StorageUnavailableError,
)

logger = get_logger(__name__)

T = TypeVar("T")

ConfigInput = ContainerConfig | Mapping[str, Any]


@dataclass(frozen=True)
class ContainerFilter:
    """Server-side narrowing for container listings."""

    status: ContainerStatus | None = None
    template: str | None = None
    node_id: str | None = None

    def apply(self, stmt: Select) -> Select:
        """
        Add WHERE clauses for every field that is set.

        Args:
            stmt: Select over Container

        Returns:
            Narrowed select
        """
        if self.status is not None:
            stmt = stmt.where(Container.status == ContainerStatus(self.status))
        if self.template is not None:
            stmt = stmt.where(Container.template == self.template)
        if self.node_id is not None:
            stmt = stmt.where(Container.node_id == self.node_id)
        return stmt


class ContainerListing:
    """
    Lazy, restartable sequence of container records.

    Nothing is queried until iteration starts. Every ``async for`` runs a
    fresh query, paging through the table by ``(created_at, id)`` so that no
    connection is held between pages.
    """

    def __init__(
        self,
        store: "ContainerStore",
        filter: ContainerFilter | None = None,
        page_size: int = 100,
    ) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")
        self.store = store
        self.filter = filter or ContainerFilter()
        self.page_size = page_size

    def __aiter__(self) -> AsyncIterator[Container]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Container]:
        after: tuple | None = None
        while True:
            page = await self.store._guard(
                "list", self.store._fetch_page, self.filter, after, self.page_size
            )
            for container in page:
                yield container
            if len(page) < self.page_size:
                return
            last = page[-1]
            after = (last.created_at, last.id)

    async def to_list(self) -> List[Container]:
        """
        Collect the whole listing.

        Returns:
            List of containers ordered by created_at ascending
        """
        return [container async for container in self]


class ContainerStore:
    """
    Typed CRUD over the container record table.

    Every write is a single-statement transaction. Uniqueness of names is
    enforced by the table's unique constraint, not by in-process locking, so
    several processes may share one database.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        settings: Settings,
        audit: AuditLogger | None = None,
    ) -> None:
        """
        Initialize container store.

        Args:
            pool: Connection pool for the state database
            settings: Application settings
            audit: Optional audit logger
        """
        self.pool = pool
        self.settings = settings
        self.audit = audit

    async def _guard(self, operation: str, func: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Run one storage operation under the statement deadline."""
        timeout = self.settings.statement_timeout_s
        try:
            return await asyncio.wait_for(self._translated(func, *args), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error(
                "Storage operation timed out",
                extra={"operation": operation, "timeout_s": timeout},
            )
            raise StorageTimeoutError(operation, timeout) from e

    async def _translated(self, func: Callable[..., Awaitable[T]], *args: Any) -> T:
        with self.pool.storage_errors():
            return await func(*args)

    async def get_or_create(self, name: str, template: str, config: ConfigInput) -> Container:
        """
        Return the container named ``name``, creating it if absent.

        Later calls for an existing name return the stored record unchanged
        whatever template and config they pass. When two callers race to
        create the same name, the loser's insert trips the unique constraint
        and it returns the winner's record instead.

        Args:
            name: Container name, already validated
            template: Base image/profile tag
            config: Resource and network configuration

        Returns:
            The stored container

        Raises:
            StorageUnavailableError: If the database cannot be reached
        """
        return await self._guard("get_or_create", self._get_or_create, name, template, config)

    async def _get_or_create(self, name: str, template: str, config: ConfigInput) -> Container:
        # A second attempt covers a race winner deleted before we could read it back
        for _ in range(2):
            existing = await self._select_by_name(name)
            if existing is not None:
                return existing

            container = await self._insert(name, template, config)
            if container is not None:
                return container

        raise StorageUnavailableError(f"Container '{name}' changed concurrently during creation")

    async def _insert(self, name: str, template: str, config: ConfigInput) -> Container | None:
        now = utc_now()
        container = Container(
            id=str(uuid4()),
            name=name,
            status=ContainerStatus.STOPPED,
            template=template,
            node_id=None,
            config=_serialize_config(config),
            created_at=now,
            updated_at=now,
        )

        try:
            async with self.pool.session() as session:
                session.add(container)
        except IntegrityError:
            winner = await self._select_by_name(name)
            if winner is None:
                logger.info(
                    "Race winner already deleted, retrying", extra={"container_name": name}
                )
                return None
            logger.info(
                "Lost creation race, returning existing container",
                extra={"container_name": name, "container_id": winner.id},
            )
            return winner

        logger.info(
            "Created container record",
            extra={"container_name": name, "container_id": container.id, "template": template},
        )
        if self.audit:
            self.audit.log_event(
                AuditEventType.CONTAINER_CREATE,
                container_name=name,
                container_id=container.id,
                source="store",
                details={"template": template, "config": container.config},
            )
        return container

    async def get_by_name(self, name: str) -> Container:
        """
        Get container by name.

        Raises:
            ContainerNotFoundError: If no record has this name
        """
        container = await self._guard("get_by_name", self._select_by_name, name)
        if container is None:
            raise ContainerNotFoundError(name)
        return container

    async def get_by_id(self, container_id: str) -> Container:
        """
        Get container by ID.

        Raises:
            ContainerNotFoundError: If no record has this ID
        """
        container = await self._guard("get_by_id", self._select_by_id, container_id)
        if container is None:
            raise ContainerNotFoundError(container_id)
        return container

    def list(self, filter: ContainerFilter | None = None, page_size: int = 100) -> ContainerListing:
        """
        List containers ordered by creation time, oldest first.

        Args:
            filter: Optional status/template/node narrowing
            page_size: Rows fetched per query while iterating

        Returns:
            Lazy listing; iterate it with ``async for`` or call ``to_list()``

        Raises:
            ValueError: If page_size is less than 1
        """
        return ContainerListing(self, filter, page_size)

    async def count(self, filter: ContainerFilter | None = None) -> int:
        """Number of containers matching ``filter``."""
        return await self._guard("count", self._count, filter or ContainerFilter())

    async def update_status(
        self, name: str, status: ContainerStatus | str, source: str = "store"
    ) -> Container:
        """
        Overwrite a container's status and advance updated_at.

        This is the only place status is written; lifecycle commands and the
        reconciler both come through here. Concurrent writers are last-write-wins.

        Args:
            name: Container name
            status: New status (enum member or its value)
            source: Component requesting the write, for the audit trail

        Returns:
            The updated container

        Raises:
            ValueError: If status is not a known value
            ContainerNotFoundError: If no record has this name
        """
        new_status = ContainerStatus(status)
        container = await self._guard(
            "update_status", self._update_returning, name, {"status": new_status}
        )
        if container is None:
            raise ContainerNotFoundError(name)

        logger.info(
            "Updated container status",
            extra={"container_name": name, "status": new_status.value},
        )
        if self.audit:
            self.audit.log_event(
                AuditEventType.CONTAINER_STATE_CHANGE,
                container_name=name,
                container_id=container.id,
                source=source,
                details={"status": new_status.value},
            )
        return container

    async def set_node(self, name: str, node_id: str | None) -> Container:
        """
        Change a container's placement hint.

        Raises:
            ContainerNotFoundError: If no record has this name
        """
        container = await self._guard(
            "set_node", self._update_returning, name, {"node_id": node_id}
        )
        if container is None:
            raise ContainerNotFoundError(name)

        logger.info("Updated container node", extra={"container_name": name, "node_id": node_id})
        if self.audit:
            self.audit.log_event(
                AuditEventType.CONTAINER_NODE_CHANGE,
                container_name=name,
                container_id=container.id,
                details={"node_id": node_id},
            )
        return container

    async def delete(self, name: str) -> None:
        """
        Remove a container record.

        Deleting an already deleted name fails, so double deletes are visible.

        Raises:
            ContainerNotFoundError: If no record has this name
        """
        deleted_id = await self._guard("delete", self._delete, name)
        if deleted_id is None:
            raise ContainerNotFoundError(name)

        logger.info(
            "Deleted container record",
            extra={"container_name": name, "container_id": deleted_id},
        )
        if self.audit:
            self.audit.log_event(
                AuditEventType.CONTAINER_DELETE,
                container_name=name,
                container_id=deleted_id,
                source="store",
            )

    async def exists(self, name: str) -> bool:
        """
        Check whether a record with this name exists.

        Raises:
            StorageUnavailableError: If the database cannot be reached
        """
        return await self._guard("exists", self._exists, name)

    async def _select_by_name(self, name: str) -> Container | None:
        async with self.pool.session() as session:
            result = await session.execute(select(Container).where(Container.name == name))
            return result.scalar_one_or_none()

    async def _select_by_id(self, container_id: str) -> Container | None:
        async with self.pool.session() as session:
            return await session.get(Container, container_id)

    async def _exists(self, name: str) -> bool:
        async with self.pool.session() as session:
            result = await session.execute(
                select(Container.id).where(Container.name == name).limit(1)
            )
            return result.first() is not None

    async def _count(self, filter: ContainerFilter) -> int:
        async with self.pool.session() as session:
            stmt = filter.apply(select(func.count()).select_from(Container))
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def _fetch_page(
        self, filter: ContainerFilter, after: tuple | None, limit: int
    ) -> List[Container]:
        stmt = filter.apply(select(Container))
        if after is not None:
            created_at, last_id = after
            stmt = stmt.where(
                or_(
                    Container.created_at > created_at,
                    and_(Container.created_at == created_at, Container.id > last_id),
                )
            )
        stmt = stmt.order_by(Container.created_at.asc(), Container.id.asc()).limit(limit)

        async with self.pool.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def _update_returning(self, name: str, values: dict) -> Container | None:
        now = literal(utc_now(), UTCDateTime())
        stmt = (
            update(Container)
            .where(Container.name == name)
            .values(
                **values,
                # Never let updated_at move backwards, even with skewed clocks
                updated_at=case((Container.updated_at > now, Container.updated_at), else_=now),
            )
            .returning(Container)
            .execution_options(synchronize_session=False)
        )
        async with self.pool.session() as session:
            result = await session.execute(stmt)
            return result.scalars().first()

    async def _delete(self, name: str) -> str | None:
        stmt = delete(Container).where(Container.name == name).returning(Container.id)
        async with self.pool.session() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()


def _serialize_config(config: ConfigInput) -> dict[str, Any]:
    """Turn a config model or mapping into the JSON-ready blob that gets stored."""
    if isinstance(config, BaseModel):
        return config.model_dump(mode="json")
    return dict(config)
