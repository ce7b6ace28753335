"""
Job lifecycle manager.

Translates schedule specs into engine options and exposes job CRUD,
pause and resume on registered queues.
"""

import logging
from typing import Any

from tenant_scheduler.clock import Clock, ensure_utc, utcnow
from tenant_scheduler.constants import JobState
from tenant_scheduler.engine.base import QueueEngine
from tenant_scheduler.errors import InvalidScheduleError, NotFoundError
from tenant_scheduler.observability.metrics import get_metrics
from tenant_scheduler.registry import QueueRecord, QueueRegistry
from tenant_scheduler.types.job import (
    JobListing,
    JobOptions,
    JobRecord,
    OneTimeSchedule,
    RecurringSchedule,
    RepeatOptions,
    ScheduleSpec,
)

logger = logging.getLogger(__name__)

LISTED_STATES: tuple[JobState, ...] = (
    JobState.WAITING,
    JobState.ACTIVE,
    JobState.COMPLETED,
    JobState.FAILED,
    JobState.DELAYED,
    JobState.PAUSED,
)


class JobManager:
    """Job operations scoped to a (tenant, queue) pair."""

    def __init__(
        self,
        registry: QueueRegistry,
        engine: QueueEngine,
        clock: Clock = utcnow,
    ):
        self._registry = registry
        self._engine = engine
        self._clock = clock
        self._metrics = get_metrics()

    def _queue(self, tenant_id: str, queue_name: str) -> QueueRecord:
        return self._registry.get(tenant_id, queue_name)

    def to_options(self, schedule: ScheduleSpec) -> JobOptions:
        """
        Convert a schedule spec into engine options.

        A run time in the past becomes a zero delay.

        Raises:
            InvalidScheduleError: If the cron expression is malformed.
        """
        if isinstance(schedule, RecurringSchedule):
            self._engine.validate_cron(schedule.cron)
            return JobOptions(repeat=RepeatOptions(cron=schedule.cron, limit=schedule.limit))

        if isinstance(schedule, OneTimeSchedule):
            delta = ensure_utc(schedule.run_at) - self._clock()
            delay_ms = int(delta.total_seconds() * 1000)
            if delay_ms < 0:
                logger.debug(
                    "Run time already passed, scheduling immediately",
                    extra={"run_at": schedule.run_at.isoformat(), "delay_ms": delay_ms},
                )
                delay_ms = 0
            return JobOptions(delay_ms=delay_ms)

        raise InvalidScheduleError("Exactly one of a one-time or recurring schedule is required")

    async def create_job(
        self,
        tenant_id: str,
        queue_name: str,
        name: str,
        payload: dict[str, Any],
        schedule: ScheduleSpec,
    ) -> JobRecord:
        """
        Submit a job to a queue.

        Returns:
            The job in a pending state.

        Raises:
            NotFoundError: If the tenant or queue is unknown.
            InvalidScheduleError: If the schedule is invalid.
        """
        record = self._queue(tenant_id, queue_name)
        options = self.to_options(schedule)
        job = await self._engine.add_job(record.handle, name, payload, options)

        self._metrics.record_job_created(tenant_id=tenant_id, schedule=schedule.kind)
        logger.info(
            "Job created",
            extra={
                "tenant_id": tenant_id,
                "queue": queue_name,
                "job_id": job.id,
                "job_name": name,
                "schedule": schedule.kind,
            },
        )
        return job

    async def update_job(
        self,
        tenant_id: str,
        queue_name: str,
        job_id: str,
        name: str,
        payload: dict[str, Any],
        schedule: ScheduleSpec,
    ) -> JobRecord:
        """
        Overwrite a job's name, payload and schedule, keeping its id.

        A finished job is scheduled again under the new options.
        """
        record = self._queue(tenant_id, queue_name)
        options = self.to_options(schedule)
        job = await self._engine.update_job(record.handle, job_id, name, payload, options)
        if job is None:
            raise NotFoundError("job", job_id)

        logger.info(
            "Job updated",
            extra={"tenant_id": tenant_id, "queue": queue_name, "job_id": job_id},
        )
        return job

    async def delete_job(self, tenant_id: str, queue_name: str, job_id: str) -> None:
        record = self._queue(tenant_id, queue_name)
        if not await self._engine.remove_job(record.handle, job_id):
            raise NotFoundError("job", job_id)

        logger.info(
            "Job deleted",
            extra={"tenant_id": tenant_id, "queue": queue_name, "job_id": job_id},
        )

    async def pause_job(self, tenant_id: str, queue_name: str, job_id: str) -> JobRecord:
        """Pause a job that has not been dispatched yet."""
        record = self._queue(tenant_id, queue_name)
        job = await self._engine.pause_job(record.handle, job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        return job

    async def resume_job(self, tenant_id: str, queue_name: str, job_id: str) -> JobRecord:
        record = self._queue(tenant_id, queue_name)
        job = await self._engine.resume_job(record.handle, job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        return job

    async def get_job(self, tenant_id: str, queue_name: str, job_id: str) -> JobRecord:
        record = self._queue(tenant_id, queue_name)
        job = await self._engine.get_job(record.handle, job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        return job

    async def list_jobs(self, tenant_id: str, queue_name: str) -> JobListing:
        """
        Jobs of a queue grouped by state.

        Each partition is a separate engine read, so a job moving between
        states during the call may show up in two partitions or in none.
        """
        record = self._queue(tenant_id, queue_name)
        listing = JobListing()
        for state in LISTED_STATES:
            jobs = await self._engine.get_jobs(record.handle, [state])
            setattr(listing, state.value, jobs)
        return listing
