"""
Queue engine contract.

The engine is the execution substrate: it stores jobs durably, orders
them, applies delays and cron repeats, and hands eligible jobs to worker
loops. The scheduler core only talks to it through this interface.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from tenant_scheduler.constants import JobState
from tenant_scheduler.engine.cron import next_fire_time, validate_cron
from tenant_scheduler.errors import EngineUnavailableError
from tenant_scheduler.types.job import JobOptions, JobRecord


@dataclass
class QueueHandle:
    """Open handle on an engine queue."""

    name: str
    closed: bool = False


def initial_run_at(options: JobOptions, now: datetime) -> datetime:
    """First run time for a job with the given options."""
    if options.repeat is not None:
        return next_fire_time(options.repeat.cron, now)
    return now + timedelta(milliseconds=options.delay_ms or 0)


def pending_state(run_at: datetime, now: datetime) -> JobState:
    """DELAYED while the run time lies in the future, WAITING otherwise."""
    return JobState.DELAYED if run_at > now else JobState.WAITING


def has_next_occurrence(options: JobOptions, repeat_count: int) -> bool:
    """Whether dispatching occurrence `repeat_count` should schedule another."""
    if options.repeat is None:
        return False
    limit = options.repeat.limit
    return limit is None or repeat_count < limit


def next_occurrence_at(options: JobOptions, run_at: datetime, now: datetime) -> datetime:
    """
    Run time of the occurrence following one due at `run_at`.

    Counting from the later of run_at and now keeps a stalled series from
    replaying every missed tick.
    """
    return next_fire_time(options.repeat.cron, max(run_at, now))


class QueueEngine(ABC):
    """
    Execution substrate consumed by the scheduler core.

    All methods raise EngineUnavailableError on transport failures and
    when called with a closed handle.
    """

    def validate_cron(self, expression: str) -> None:
        """
        Validate a cron expression.

        Raises:
            InvalidScheduleError: If the expression is malformed.
        """
        validate_cron(expression)

    @staticmethod
    def ensure_open(handle: QueueHandle) -> None:
        """Reject operations on a closed handle."""
        if handle.closed:
            raise EngineUnavailableError(f"Queue handle is closed: {handle.name}")

    # Queue operations

    @abstractmethod
    async def create_queue(self, name: str) -> QueueHandle:
        """Open (creating if needed) the queue with the given name."""

    @abstractmethod
    async def close_queue(self, handle: QueueHandle) -> None:
        """Close a handle. Closing twice is a no-op; stored jobs are kept."""

    @abstractmethod
    async def pause(self, handle: QueueHandle) -> None:
        """Stop dispatching waiting jobs; active jobs run to completion."""

    @abstractmethod
    async def resume(self, handle: QueueHandle) -> None:
        """Resume dispatching."""

    @abstractmethod
    async def is_paused(self, handle: QueueHandle) -> bool:
        """Current pause flag of the queue."""

    @abstractmethod
    async def purge(self, handle: QueueHandle, states: Iterable[JobState]) -> int:
        """Remove every job in the given states; returns the count removed."""

    # Job operations

    @abstractmethod
    async def add_job(
        self,
        handle: QueueHandle,
        name: str,
        payload: dict[str, Any],
        options: JobOptions,
    ) -> JobRecord:
        """Store a new job and return it."""

    @abstractmethod
    async def get_job(self, handle: QueueHandle, job_id: str) -> JobRecord | None:
        """Fetch a job, or None."""

    @abstractmethod
    async def get_jobs(
        self,
        handle: QueueHandle,
        states: Iterable[JobState],
    ) -> list[JobRecord]:
        """Jobs in the given states ordered by run time."""

    @abstractmethod
    async def update_job(
        self,
        handle: QueueHandle,
        job_id: str,
        name: str,
        payload: dict[str, Any],
        options: JobOptions,
    ) -> JobRecord | None:
        """
        Overwrite name, payload and options keeping the job id.

        Pending and paused jobs are rescheduled, active jobs keep running,
        terminal jobs are re-armed. Returns None if the job is absent.
        """

    @abstractmethod
    async def remove_job(self, handle: QueueHandle, job_id: str) -> bool:
        """Delete a job; False if it did not exist."""

    @abstractmethod
    async def pause_job(self, handle: QueueHandle, job_id: str) -> JobRecord | None:
        """Pause a pending job; other states are returned unchanged."""

    @abstractmethod
    async def resume_job(self, handle: QueueHandle, job_id: str) -> JobRecord | None:
        """Resume a paused job; other states are returned unchanged."""

    # Worker operations

    @abstractmethod
    async def fetch_next(self, handle: QueueHandle) -> JobRecord | None:
        """
        Atomically move the next eligible job to ACTIVE and return it.

        Returns None when the queue is paused or nothing is due. Dispatching
        an occurrence of a recurring job schedules the next occurrence until
        the repeat limit is reached.
        """

    @abstractmethod
    async def complete_job(
        self,
        handle: QueueHandle,
        job_id: str,
        result: dict[str, Any] | None = None,
    ) -> JobRecord | None:
        """ACTIVE -> COMPLETED. Returns None if the job is no longer active."""

    @abstractmethod
    async def fail_job(
        self,
        handle: QueueHandle,
        job_id: str,
        error: str,
    ) -> JobRecord | None:
        """ACTIVE -> FAILED. Returns None if the job is no longer active."""

    @abstractmethod
    async def recover_stalled(self, handle: QueueHandle) -> int:
        """Return ACTIVE jobs with expired leases to WAITING."""

    async def close(self) -> None:
        """Release resources held by the engine."""
