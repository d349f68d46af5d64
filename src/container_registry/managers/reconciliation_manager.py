"""Reconciliation of persisted container status with the live runtime."""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Dict, Optional, Tuple

from container_registry.config import Settings
from container_registry.models.containers import Container, ContainerStatus
from container_registry.repositories.containers import ContainerFilter, ContainerStore
from container_registry.runtime import RuntimeDriver
from container_registry.utils import get_logger
from container_registry.utils.audit_logger import AuditEventType, AuditLogger
from container_registry.utils.exceptions import ContainerNotFoundError, RuntimeUnavailableError
from container_registry.utils.metrics_collector import MetricsCollector

logger = get_logger(__name__)

# Runtime state text (LXC and Docker vocabularies) -> status. Keys are lowercase.
RUNTIME_STATE_MAP: Dict[str, ContainerStatus] = {
    # LXC
    "running": ContainerStatus.RUNNING,
    "stopped": ContainerStatus.STOPPED,
    "starting": ContainerStatus.STARTING,
    "stopping": ContainerStatus.STOPPING,
    "aborting": ContainerStatus.STOPPING,
    "frozen": ContainerStatus.FROZEN,
    "freezing": ContainerStatus.FROZEN,
    "thawed": ContainerStatus.RUNNING,
    # Docker
    "created": ContainerStatus.STOPPED,
    "exited": ContainerStatus.STOPPED,
    "restarting": ContainerStatus.STARTING,
    "removing": ContainerStatus.STOPPING,
    "paused": ContainerStatus.FROZEN,
    "dead": ContainerStatus.ERROR,
}


def map_runtime_state(raw: Optional[str]) -> ContainerStatus:
    """
    Translate a runtime-reported state into a container status.

    Args:
        raw: State text from the runtime, or None if it has no such container

    Returns:
        STOPPED for a missing container, the mapped status for known text,
        ERROR for anything else
    """
    if raw is None:
        return ContainerStatus.STOPPED
    return RUNTIME_STATE_MAP.get(raw.strip().lower(), ContainerStatus.ERROR)


class ReadFreshness(str, Enum):
    """How the status in an EffectiveStatus was obtained."""

    LIVE = "live"  # runtime queried for this read
    CACHED = "cached"  # recent runtime observation reused
    DEGRADED = "degraded"  # runtime unreachable, persisted status returned
    STORED = "stored"  # caller did not ask for a live check


@dataclass(frozen=True)
class EffectiveStatus:
    """Status returned to a caller after merging live and persisted state."""

    record: Container
    status: ContainerStatus
    freshness: ReadFreshness
    error: Optional[RuntimeUnavailableError] = None
    written: bool = False

    @property
    def degraded(self) -> bool:
        """True when the status is stale-but-best-known."""
        return self.freshness is ReadFreshness.DEGRADED

    @property
    def confirmed(self) -> bool:
        """True when the status reflects a runtime observation."""
        return self.freshness in (ReadFreshness.LIVE, ReadFreshness.CACHED)


class ReconciliationManager:
    """
    Produces effective statuses and writes live observations back.

    Only observes the runtime; never starts, stops or removes anything.
    Writes go through ContainerStore.update_status and race with lifecycle
    writes on a last-write-wins basis, with updated_at as the audit trail.
    """

    def __init__(
        self,
        store: ContainerStore,
        driver: RuntimeDriver,
        settings: Settings,
        metrics: MetricsCollector | None = None,
        audit: AuditLogger | None = None,
    ) -> None:
        """
        Initialize reconciliation manager.

        Args:
            store: Container record store
            driver: Runtime driver to query for live state
            settings: Application settings
            metrics: Optional metrics collector
            audit: Optional audit logger
        """
        self.store = store
        self.driver = driver
        self.settings = settings
        self.metrics = metrics
        self.audit = audit
        # name -> (observed status, monotonic time observed)
        self._cache: Dict[str, Tuple[ContainerStatus, float]] = {}

    async def effective_status(self, name: str, refresh: bool = False) -> EffectiveStatus:
        """
        Get a container's effective status.

        Args:
            name: Container name
            refresh: Skip the cache and query the runtime

        Returns:
            EffectiveStatus; ``degraded`` is set when the runtime could not be reached

        Raises:
            ContainerNotFoundError: If no record has this name
            StorageUnavailableError: If the database cannot be reached
        """
        record = await self.store.get_by_name(name)
        return await self._resolve(record, refresh)

    async def after_lifecycle_command(self, name: str) -> EffectiveStatus:
        """
        Re-read live status right after a start/stop/delete was issued.

        Always queries the runtime, whatever is cached.
        """
        self.invalidate(name)
        return await self.effective_status(name, refresh=True)

    async def list_effective(
        self, filter: ContainerFilter | None = None, refresh: bool = False
    ) -> AsyncIterator[EffectiveStatus]:
        """
        Effective status for every listed container, oldest first.

        Args:
            filter: Optional status/template/node narrowing
            refresh: Skip the cache and query the runtime for each container

        Yields:
            EffectiveStatus per container; records deleted while the listing
            runs are skipped
        """
        async for record in self.store.list(filter):
            try:
                effective = await self._resolve(record, refresh)
            except ContainerNotFoundError:
                logger.info(
                    "Container deleted during listing, skipping",
                    extra={"container_name": record.name},
                )
                self.invalidate(record.name)
                continue
            yield effective

    async def reconcile_all(self) -> dict:
        """
        Refresh every container against the runtime.

        Returns:
            Dictionary with checked, updated and degraded counts
        """
        logger.info("Starting status reconciliation sweep")
        stats = {"checked": 0, "updated": 0, "degraded": 0}

        async for effective in self.list_effective(refresh=True):
            stats["checked"] += 1
            if effective.written:
                stats["updated"] += 1
            if effective.degraded:
                stats["degraded"] += 1

        logger.info("Status reconciliation sweep completed", extra=stats)
        if self.audit:
            self.audit.log_event(
                AuditEventType.SYSTEM_RECONCILE, source="reconciler", details=stats
            )
        return stats

    def invalidate(self, name: str | None = None) -> None:
        """
        Drop cached observations.

        Args:
            name: Container to forget; all containers when None
        """
        if name is None:
            self._cache.clear()
        else:
            self._cache.pop(name, None)
        self._report_cache_size()

    async def _resolve(self, record: Container, refresh: bool) -> EffectiveStatus:
        if not refresh:
            cached = self._cached(record.name)
            if cached is not None:
                if self.metrics:
                    self.metrics.record_cache_hit()
                return await self._merge(record, cached, ReadFreshness.CACHED)

        try:
            observed = await self._query(record.name)
        except RuntimeUnavailableError as e:
            if self.metrics:
                self.metrics.record_degraded_read()
            logger.warning(
                "Runtime unavailable, returning persisted status",
                extra={
                    "container_name": record.name,
                    "status": record.status.value,
                    "error": str(e),
                },
            )
            return EffectiveStatus(
                record=record,
                status=record.status,
                freshness=ReadFreshness.DEGRADED,
                error=e,
            )

        self._remember(record.name, observed)
        return await self._merge(record, observed, ReadFreshness.LIVE)

    async def _merge(
        self, record: Container, observed: ContainerStatus, freshness: ReadFreshness
    ) -> EffectiveStatus:
        if observed == record.status:
            return EffectiveStatus(record=record, status=observed, freshness=freshness)

        updated = await self.store.update_status(record.name, observed, source="reconciler")
        if self.metrics:
            self.metrics.record_reconcile_write(observed.value)
        logger.info(
            "Reconciled container status",
            extra={
                "container_name": record.name,
                "previous_status": record.status.value,
                "status": observed.value,
            },
        )
        return EffectiveStatus(record=updated, status=observed, freshness=freshness, written=True)

    async def _query(self, name: str) -> ContainerStatus:
        timeout = self.settings.runtime_timeout_s
        try:
            raw = await asyncio.wait_for(self.driver.query_state(name), timeout=timeout)
        except asyncio.TimeoutError as e:
            if self.metrics:
                self.metrics.record_runtime_query("unavailable")
            raise RuntimeUnavailableError(
                f"Runtime query for '{name}' timed out after {timeout} seconds", e
            ) from e
        except RuntimeUnavailableError:
            if self.metrics:
                self.metrics.record_runtime_query("unavailable")
            raise

        if self.metrics:
            self.metrics.record_runtime_query("missing" if raw is None else "found")
        status = map_runtime_state(raw)
        if raw is not None and raw.strip().lower() not in RUNTIME_STATE_MAP:
            logger.warning(
                "Unrecognized runtime state, mapping to error",
                extra={"container_name": name, "runtime_state": raw},
            )
        return status

    def _cached(self, name: str) -> ContainerStatus | None:
        ttl = self.settings.status_cache_ttl_s
        entry = self._cache.get(name)
        if entry is None or ttl <= 0:
            return None
        status, observed_at = entry
        if time.monotonic() - observed_at > ttl:
            del self._cache[name]
            self._report_cache_size()
            return None
        return status

    def _remember(self, name: str, status: ContainerStatus) -> None:
        if self.settings.status_cache_ttl_s > 0:
            self._cache[name] = (status, time.monotonic())
            self._report_cache_size()

    def _report_cache_size(self) -> None:
        if self.metrics:
            self.metrics.set_cached_statuses(len(self._cache))
