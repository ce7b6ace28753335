"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from tenant_scheduler.constants import (
    METRIC_BOOTSTRAP_FAILURES,
    METRIC_JOB_DURATION,
    METRIC_JOBS_COMPLETED,
    METRIC_JOBS_CREATED,
    METRIC_QUEUES_REGISTERED,
    METRIC_WORKER_BINDINGS,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the scheduler.

    Collects metrics for:
    - Registered queues and live worker bindings
    - Job creation and completion
    - Job execution duration
    - Bootstrap failures
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.queues_registered = Gauge(
            METRIC_QUEUES_REGISTERED,
            "Number of registered queues",
            ["tenant_id"],
            registry=self._registry,
        )

        self.worker_bindings = Gauge(
            METRIC_WORKER_BINDINGS,
            "Number of running worker bindings",
            registry=self._registry,
        )

        self.jobs_created = Counter(
            METRIC_JOBS_CREATED,
            "Total number of jobs created",
            ["tenant_id", "schedule"],
            registry=self._registry,
        )

        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of jobs finished by workers",
            ["queue", "status"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["queue", "status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.bootstrap_failures = Counter(
            METRIC_BOOTSTRAP_FAILURES,
            "Catalog entries that could not be restored at startup",
            registry=self._registry,
        )

    def record_queue_registered(self, tenant_id: str) -> None:
        """Record a queue entering the registry."""
        self.queues_registered.labels(tenant_id=tenant_id).inc()

    def record_queue_removed(self, tenant_id: str) -> None:
        """Record a queue leaving the registry."""
        self.queues_registered.labels(tenant_id=tenant_id).dec()

    def record_binding_started(self) -> None:
        self.worker_bindings.inc()

    def record_binding_stopped(self) -> None:
        self.worker_bindings.dec()

    def record_job_created(self, tenant_id: str, schedule: str) -> None:
        """Record a job submission."""
        self.jobs_created.labels(tenant_id=tenant_id, schedule=schedule).inc()

    def record_job_completed(
        self,
        queue: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record a job outcome."""
        self.jobs_completed.labels(queue=queue, status=status).inc()
        self.job_duration.labels(queue=queue, status=status).observe(
            duration_seconds
        )

    def record_bootstrap_failure(self) -> None:
        self.bootstrap_failures.inc()

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
