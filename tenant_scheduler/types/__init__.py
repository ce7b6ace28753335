"""
Type definitions for the tenant scheduler.
Contains input/output type definitions grouped by module.
"""

from tenant_scheduler.types.api import (
    CreateSchedulerRequest,
    ErrorResponse,
    HealthResponse,
    JobRequest,
    MessageResponse,
    RenameSchedulerRequest,
    SchedulerResponse,
)
from tenant_scheduler.types.events import JobOutcome
from tenant_scheduler.types.job import (
    JobContext,
    JobListing,
    JobOptions,
    JobRecord,
    JobResult,
    OneTimeSchedule,
    RecurringSchedule,
    RepeatOptions,
    ScheduleSpec,
)

__all__ = [
    # API types
    "CreateSchedulerRequest",
    "RenameSchedulerRequest",
    "SchedulerResponse",
    "JobRequest",
    "MessageResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "OneTimeSchedule",
    "RecurringSchedule",
    "ScheduleSpec",
    "RepeatOptions",
    "JobOptions",
    "JobRecord",
    "JobListing",
    "JobResult",
    "JobContext",
    # Event types
    "JobOutcome",
]
