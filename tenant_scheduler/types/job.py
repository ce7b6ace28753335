"""
Job-related type definitions for internal use.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, model_validator

from tenant_scheduler.constants import PENDING_STATES, TERMINAL_STATES, JobState


class OneTimeSchedule(BaseModel):
    """Run once at a point in time."""

    kind: Literal["one_time"] = "one_time"
    run_at: datetime


class RecurringSchedule(BaseModel):
    """Run on a cron schedule, optionally a limited number of times."""

    kind: Literal["recurring"] = "recurring"
    cron: str
    limit: int | None = Field(default=None, ge=1)


ScheduleSpec = Annotated[
    OneTimeSchedule | RecurringSchedule,
    Field(discriminator="kind"),
]


class RepeatOptions(BaseModel):
    """Engine repeat options for recurring jobs."""

    cron: str
    limit: int | None = None


class JobOptions(BaseModel):
    """
    Engine scheduling options.

    Exactly one of delay_ms or repeat is set.
    """

    delay_ms: int | None = Field(default=None, ge=0)
    repeat: RepeatOptions | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "JobOptions":
        if (self.delay_ms is None) == (self.repeat is None):
            raise ValueError("exactly one of delay_ms or repeat must be set")
        return self


class JobRecord(BaseModel):
    """
    Snapshot of a job as stored by the queue engine.

    Engines hand out copies; mutating a record does not change engine state.
    """

    id: str
    queue: str
    name: str
    payload: dict[str, Any] = Field(default_factory=dict)
    options: JobOptions
    state: JobState
    run_at: datetime
    created_at: datetime
    processed_at: datetime | None = None
    finished_at: datetime | None = None
    attempts_made: int = 0
    repeat_key: str | None = None
    repeat_count: int = 0
    result: dict[str, Any] | None = None
    failed_reason: str | None = None

    @property
    def is_pending(self) -> bool:
        """Waiting or delayed: not yet dispatched to a worker."""
        return self.state in PENDING_STATES

    @property
    def is_terminal(self) -> bool:
        """Completed or failed."""
        return self.state in TERMINAL_STATES


class JobListing(BaseModel):
    """Jobs of a queue grouped by engine state partition."""

    waiting: list[JobRecord] = Field(default_factory=list)
    active: list[JobRecord] = Field(default_factory=list)
    completed: list[JobRecord] = Field(default_factory=list)
    failed: list[JobRecord] = Field(default_factory=list)
    delayed: list[JobRecord] = Field(default_factory=list)
    paused: list[JobRecord] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(
            len(getattr(self, state.value)) for state in JobState
        )


class JobResult(BaseModel):
    """
    Result of job execution.
    Returned by job handlers after processing.
    """

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None
    duration_ms: float | None = None


@dataclass
class JobContext:
    """
    Context passed to job handlers during execution.
    Contains job metadata and utilities for the handler.
    """

    job_id: str
    tenant_id: str
    queue_name: str
    engine_queue_id: str
    name: str
    payload: dict[str, Any]
    attempt: int
    repeat_count: int = 0

    @property
    def is_recurring(self) -> bool:
        """Check if this execution is an occurrence of a recurring job."""
        return self.repeat_count > 0
