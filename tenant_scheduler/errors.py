"""
Error kinds raised by the scheduler core.

Every public operation either returns its payload or raises exactly one
SchedulerError subclass.
"""

from typing import Literal

NotFoundKind = Literal["tenant", "queue", "job"]


class SchedulerError(Exception):
    """Base class for scheduler errors."""

    code = "scheduler_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(SchedulerError):
    """A tenant, queue or job does not exist."""

    code = "not_found"

    def __init__(self, kind: NotFoundKind, identifier: str):
        super().__init__(f"{kind.capitalize()} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class AlreadyExistsError(SchedulerError):
    """
    A queue with the same (tenant, name) key is already registered, or the
    engine queue it would use belongs to another queue.
    """

    code = "already_exists"

    def __init__(self, tenant_id: str, queue_name: str, message: str | None = None):
        super().__init__(message or f"Scheduler already exists: {tenant_id}/{queue_name}")
        self.tenant_id = tenant_id
        self.queue_name = queue_name


class InvalidScheduleError(SchedulerError):
    """Schedule spec is missing or conflicting, or its cron expression is malformed."""

    code = "invalid_schedule"


class EngineUnavailableError(SchedulerError):
    """Transient I/O failure against the queue engine or the catalog store."""

    code = "engine_unavailable"


class EngineInconsistentError(SchedulerError):
    """An operation was partially applied and must be retried."""

    code = "engine_inconsistent"
