"""
Prometheus metrics collection.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from kue.constants import (
    METRIC_DEQUEUE,
    METRIC_JOB_DURATION,
    METRIC_JOBS_CREATED,
    METRIC_JOBS_FINISHED,
    METRIC_QUEUE_DEPTH,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Jobs created, by type
    - Job outcomes (complete, retried, failed) and handler duration
    - Dequeue attempts (claimed, empty, lost race)
    - Jobs per state, as last read through `Queue.card`
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of jobs indexed under a state",
            ["state"],
            registry=self._registry,
        )

        self.jobs_created = Counter(
            METRIC_JOBS_CREATED,
            "Total number of jobs created",
            ["job_type"],
            registry=self._registry,
        )

        self.jobs_finished = Counter(
            METRIC_JOBS_FINISHED,
            "Total number of job runs by outcome",
            ["job_type", "status"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Handler execution duration in seconds",
            ["job_type", "status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.dequeue = Counter(
            METRIC_DEQUEUE,
            "Dequeue attempts by outcome",
            ["worker_id", "outcome"],
            registry=self._registry,
        )

    def record_job_created(self, job_type: str) -> None:
        """Record a job creation."""
        self.jobs_created.labels(job_type=job_type).inc()

    def record_job_finished(
        self,
        job_type: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record the outcome of one job run."""
        self.jobs_finished.labels(job_type=job_type, status=status).inc()
        self.job_duration.labels(job_type=job_type, status=status).observe(
            duration_seconds
        )

    def record_dequeue(self, worker_id: str, outcome: str) -> None:
        """Record a dequeue attempt."""
        self.dequeue.labels(worker_id=worker_id, outcome=outcome).inc()

    def update_queue_depth(self, state: str, depth: int) -> None:
        """Update the job count for a state."""
        self.queue_depth.labels(state=state).set(depth)


def setup_metrics(port: int | None = None) -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Args:
        port: If given, serve /metrics over HTTP on this port.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    if port:
        start_http_server(port)
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
