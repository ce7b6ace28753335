"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from tenant_scheduler.constants import QueueState
from tenant_scheduler.errors import InvalidScheduleError
from tenant_scheduler.types.job import (
    OneTimeSchedule,
    RecurringSchedule,
    ScheduleSpec,
)

# Tenant and queue names; ":" is reserved as the catalog key separator
NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.\-]{0,127}$"


class CreateSchedulerRequest(BaseModel):
    """Request body for creating a scheduler."""

    queue_name: str = Field(..., pattern=NAME_PATTERN, description="Scheduler name")


class RenameSchedulerRequest(BaseModel):
    """Request body for renaming a scheduler."""

    new_queue_name: str = Field(..., pattern=NAME_PATTERN, description="New scheduler name")


class SchedulerResponse(BaseModel):
    """Scheduler details."""

    tenant_id: str
    queue_name: str
    engine_queue_id: str
    state: QueueState
    created_at: datetime


class JobRequest(BaseModel):
    """
    Request body for creating or updating a job.

    Exactly one of run_at or cron must be provided.
    """

    name: str = Field(..., min_length=1, max_length=255, description="Job name")
    payload: dict[str, Any] = Field(default_factory=dict, description="Job payload data")
    run_at: datetime | None = Field(default=None, description="Run once at this time")
    cron: str | None = Field(default=None, description="Cron expression for recurring jobs")
    limit: int | None = Field(
        default=None, ge=1, description="Maximum number of recurring runs"
    )

    def to_schedule(self) -> ScheduleSpec:
        """Build the schedule spec, rejecting missing or conflicting fields."""
        if (self.run_at is None) == (self.cron is None):
            raise InvalidScheduleError("Exactly one of run_at or cron must be provided")
        if self.cron is not None:
            return RecurringSchedule(cron=self.cron, limit=self.limit)
        return OneTimeSchedule(run_at=self.run_at)


class MessageResponse(BaseModel):
    """Plain confirmation message."""

    message: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    queues: int
    worker_bindings: int
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: str | None = None
