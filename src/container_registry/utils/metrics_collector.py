"""Prometheus metrics collection for the container registry."""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class MetricsCollector:
    """Collects Prometheus metrics for storage and reconciliation activity."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """
        Initialize metrics collector with all metrics.

        Args:
            registry: Registry to register into; a private one is created by default
        """
        self.registry = registry or CollectorRegistry()

        self.runtime_queries_total = Counter(
            "container_registry_runtime_queries_total",
            "Total number of live status queries sent to the runtime",
            ["outcome"],
            registry=self.registry,
        )

        self.status_cache_hits_total = Counter(
            "container_registry_status_cache_hits_total",
            "Total number of effective status reads served from the cache",
            registry=self.registry,
        )

        self.degraded_reads_total = Counter(
            "container_registry_degraded_reads_total",
            "Total number of reads that fell back to the persisted status",
            registry=self.registry,
        )

        self.reconcile_writes_total = Counter(
            "container_registry_reconcile_writes_total",
            "Total number of status writes made by the reconciler",
            ["status"],
            registry=self.registry,
        )

        self.pool_exhausted_total = Counter(
            "container_registry_pool_exhausted_total",
            "Total number of connection acquisitions that timed out",
            registry=self.registry,
        )

        self.cached_statuses = Gauge(
            "container_registry_cached_statuses",
            "Number of live statuses currently held in the cache",
            registry=self.registry,
        )

    def record_runtime_query(self, outcome: str) -> None:
        """
        Record a runtime status query.

        Args:
            outcome: Query outcome (found, missing, unavailable)
        """
        self.runtime_queries_total.labels(outcome=outcome).inc()

    def record_cache_hit(self) -> None:
        """Record an effective status served from the cache."""
        self.status_cache_hits_total.inc()

    def record_degraded_read(self) -> None:
        """Record a read that could not be confirmed against the runtime."""
        self.degraded_reads_total.inc()

    def record_reconcile_write(self, status: str) -> None:
        """
        Record a status write made by the reconciler.

        Args:
            status: Status value that was written
        """
        self.reconcile_writes_total.labels(status=status).inc()

    def record_pool_exhausted(self) -> None:
        """Record a connection acquisition that timed out."""
        self.pool_exhausted_total.inc()

    def set_cached_statuses(self, count: int) -> None:
        """
        Set the number of cached live statuses.

        Args:
            count: Number of cache entries
        """
        self.cached_statuses.set(count)

    def get_metrics(self) -> bytes:
        """
        Get current metrics in Prometheus format.

        Returns:
            Metrics data in bytes
        """
        return generate_latest(self.registry)
