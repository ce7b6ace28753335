"""
Shared constants: state enums, catalog layout, metric and span names.
"""

from enum import StrEnum


class JobState(StrEnum):
    """
    Engine-side job state partitions.

    State transitions:
    - WAITING/DELAYED -> ACTIVE (dispatched to a worker)
    - ACTIVE -> COMPLETED (handler succeeded)
    - ACTIVE -> FAILED (handler failed or was cancelled)
    - WAITING/DELAYED -> PAUSED (job paused before dispatch)
    - PAUSED -> WAITING/DELAYED (job resumed)
    - ACTIVE -> WAITING (lease expired - crash recovery)
    """

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


class QueueState(StrEnum):
    """Registry-side queue states."""

    ACTIVE = "active"
    PAUSED = "paused"


# Jobs a worker may still pick up
PENDING_STATES: frozenset[JobState] = frozenset({JobState.WAITING, JobState.DELAYED})

# Jobs that have finished executing
TERMINAL_STATES: frozenset[JobState] = frozenset({JobState.COMPLETED, JobState.FAILED})

# Partitions removed when a queue is deleted
PURGE_STATES: tuple[JobState, ...] = (
    JobState.WAITING,
    JobState.ACTIVE,
    JobState.DELAYED,
    JobState.COMPLETED,
    JobState.FAILED,
    JobState.PAUSED,
)

# Catalog layout
CATALOG_QUEUE_MAP = "tenant_queues"
CATALOG_TENANT_SET_PREFIX = "tenant_queue:"
CATALOG_KEY_SEPARATOR = ":"
ENGINE_QUEUE_SEPARATOR = "-"

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_QUEUES_REGISTERED = "scheduler_queues_registered"
METRIC_WORKER_BINDINGS = "scheduler_worker_bindings"
METRIC_JOBS_CREATED = "scheduler_jobs_created_total"
METRIC_JOBS_COMPLETED = "scheduler_jobs_completed_total"
METRIC_JOB_DURATION = "scheduler_job_duration_seconds"
METRIC_BOOTSTRAP_FAILURES = "scheduler_bootstrap_failures_total"

# Trace span names
SPAN_EXECUTE_JOB = "execute_job"
SPAN_BOOTSTRAP = "bootstrap"
