"""
Simulated in-process queue engine.

Keeps every queue and job in memory for the lifetime of the engine object
and reads time from an injectable clock, so delayed and recurring jobs can
be driven through simulated time. Reopening a queue name returns the jobs
stored under it, which stands in for the engine's durable storage across
scheduler restarts.
"""

import itertools
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from tenant_scheduler.clock import Clock, utcnow
from tenant_scheduler.constants import PENDING_STATES, JobState
from tenant_scheduler.engine.base import (
    QueueEngine,
    QueueHandle,
    has_next_occurrence,
    initial_run_at,
    next_occurrence_at,
    pending_state,
)
from tenant_scheduler.types.job import JobOptions, JobRecord

logger = logging.getLogger(__name__)


@dataclass
class _StoredQueue:
    name: str
    paused: bool = False
    jobs: dict[str, JobRecord] = field(default_factory=dict)
    leases: dict[str, datetime] = field(default_factory=dict)


def _apply_repeat_identity(job: JobRecord) -> None:
    if job.options.repeat is None:
        job.repeat_key = None
        job.repeat_count = 0
    elif job.repeat_key is None:
        job.repeat_key = job.id
        job.repeat_count = 1


class MemoryQueueEngine(QueueEngine):
    """
    Queue engine simulated in memory.

    Dispatch order is run time, then insertion order. Job ids are
    increasing integers rendered as strings.
    """

    def __init__(
        self,
        clock: Clock = utcnow,
        lease_duration_seconds: float = 30.0,
    ):
        """
        Initialize the engine.

        Args:
            clock: Time source for delays, cron repeats and leases.
            lease_duration_seconds: How long a dispatched job may stay
                active before recover_stalled() returns it to waiting.
        """
        self._clock = clock
        self._lease_duration = timedelta(seconds=lease_duration_seconds)
        self._queues: dict[str, _StoredQueue] = {}
        self._ids = itertools.count(1)

    def _queue(self, handle: QueueHandle) -> _StoredQueue:
        self.ensure_open(handle)
        return self._queues.setdefault(handle.name, _StoredQueue(name=handle.name))

    def _promote_due(self, queue: _StoredQueue, now: datetime) -> None:
        for job in queue.jobs.values():
            if job.state == JobState.DELAYED and job.run_at <= now:
                job.state = JobState.WAITING

    @staticmethod
    def _ordered(jobs: Iterable[JobRecord]) -> list[JobRecord]:
        return [
            job
            for _, job in sorted(
                enumerate(jobs), key=lambda item: (item[1].run_at, item[0])
            )
        ]

    def _new_job(
        self,
        queue: _StoredQueue,
        name: str,
        payload: dict[str, Any],
        options: JobOptions,
        run_at: datetime,
        now: datetime,
    ) -> JobRecord:
        job = JobRecord(
            id=str(next(self._ids)),
            queue=queue.name,
            name=name,
            payload=dict(payload),
            options=options.model_copy(deep=True),
            state=pending_state(run_at, now),
            run_at=run_at,
            created_at=now,
        )
        queue.jobs[job.id] = job
        return job

    # Queue operations

    async def create_queue(self, name: str) -> QueueHandle:
        self._queues.setdefault(name, _StoredQueue(name=name))
        return QueueHandle(name=name)

    async def close_queue(self, handle: QueueHandle) -> None:
        handle.closed = True

    async def pause(self, handle: QueueHandle) -> None:
        self._queue(handle).paused = True

    async def resume(self, handle: QueueHandle) -> None:
        self._queue(handle).paused = False

    async def is_paused(self, handle: QueueHandle) -> bool:
        return self._queue(handle).paused

    async def purge(self, handle: QueueHandle, states: Iterable[JobState]) -> int:
        queue = self._queue(handle)
        targets = set(states)
        doomed = [job_id for job_id, job in queue.jobs.items() if job.state in targets]
        for job_id in doomed:
            del queue.jobs[job_id]
            queue.leases.pop(job_id, None)
        return len(doomed)

    # Job operations

    async def add_job(
        self,
        handle: QueueHandle,
        name: str,
        payload: dict[str, Any],
        options: JobOptions,
    ) -> JobRecord:
        queue = self._queue(handle)
        now = self._clock()
        job = self._new_job(queue, name, payload, options, initial_run_at(options, now), now)
        _apply_repeat_identity(job)
        return job.model_copy(deep=True)

    async def get_job(self, handle: QueueHandle, job_id: str) -> JobRecord | None:
        queue = self._queue(handle)
        self._promote_due(queue, self._clock())
        job = queue.jobs.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    async def get_jobs(
        self,
        handle: QueueHandle,
        states: Iterable[JobState],
    ) -> list[JobRecord]:
        queue = self._queue(handle)
        self._promote_due(queue, self._clock())
        targets = set(states)
        return [
            job.model_copy(deep=True)
            for job in self._ordered(queue.jobs.values())
            if job.state in targets
        ]

    async def update_job(
        self,
        handle: QueueHandle,
        job_id: str,
        name: str,
        payload: dict[str, Any],
        options: JobOptions,
    ) -> JobRecord | None:
        queue = self._queue(handle)
        job = queue.jobs.get(job_id)
        if job is None:
            return None

        now = self._clock()
        job.name = name
        job.payload = dict(payload)
        job.options = options.model_copy(deep=True)
        _apply_repeat_identity(job)

        if job.state == JobState.PAUSED:
            job.run_at = initial_run_at(options, now)
        elif job.state != JobState.ACTIVE:
            if job.is_terminal:
                logger.info(
                    "Re-arming finished job",
                    extra={"job_id": job_id, "queue": queue.name, "state": job.state.value},
                )
                job.processed_at = None
                job.finished_at = None
                job.result = None
                job.failed_reason = None
            job.run_at = initial_run_at(options, now)
            job.state = pending_state(job.run_at, now)

        return job.model_copy(deep=True)

    async def remove_job(self, handle: QueueHandle, job_id: str) -> bool:
        queue = self._queue(handle)
        queue.leases.pop(job_id, None)
        return queue.jobs.pop(job_id, None) is not None

    async def pause_job(self, handle: QueueHandle, job_id: str) -> JobRecord | None:
        queue = self._queue(handle)
        job = queue.jobs.get(job_id)
        if job is None:
            return None
        if job.state in PENDING_STATES:
            job.state = JobState.PAUSED
        return job.model_copy(deep=True)

    async def resume_job(self, handle: QueueHandle, job_id: str) -> JobRecord | None:
        queue = self._queue(handle)
        job = queue.jobs.get(job_id)
        if job is None:
            return None
        if job.state == JobState.PAUSED:
            job.state = pending_state(job.run_at, self._clock())
        return job.model_copy(deep=True)

    # Worker operations

    async def fetch_next(self, handle: QueueHandle) -> JobRecord | None:
        queue = self._queue(handle)
        if queue.paused:
            return None

        now = self._clock()
        self._promote_due(queue, now)
        eligible = [job for job in queue.jobs.values() if job.state == JobState.WAITING]
        if not eligible:
            return None

        job = self._ordered(eligible)[0]
        job.state = JobState.ACTIVE
        job.attempts_made += 1
        job.processed_at = now
        queue.leases[job.id] = now + self._lease_duration

        if has_next_occurrence(job.options, job.repeat_count):
            follower = self._new_job(
                queue,
                job.name,
                job.payload,
                job.options,
                next_occurrence_at(job.options, job.run_at, now),
                now,
            )
            follower.repeat_key = job.repeat_key
            follower.repeat_count = job.repeat_count + 1

        return job.model_copy(deep=True)

    async def complete_job(
        self,
        handle: QueueHandle,
        job_id: str,
        result: dict[str, Any] | None = None,
    ) -> JobRecord | None:
        return self._finish(handle, job_id, JobState.COMPLETED, result=result)

    async def fail_job(
        self,
        handle: QueueHandle,
        job_id: str,
        error: str,
    ) -> JobRecord | None:
        return self._finish(handle, job_id, JobState.FAILED, error=error)

    def _finish(
        self,
        handle: QueueHandle,
        job_id: str,
        state: JobState,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> JobRecord | None:
        queue = self._queue(handle)
        job = queue.jobs.get(job_id)
        if job is None or job.state != JobState.ACTIVE:
            return None
        job.state = state
        job.finished_at = self._clock()
        job.result = result
        job.failed_reason = error
        queue.leases.pop(job_id, None)
        return job.model_copy(deep=True)

    async def recover_stalled(self, handle: QueueHandle) -> int:
        queue = self._queue(handle)
        now = self._clock()
        expired = [job_id for job_id, expires in queue.leases.items() if expires < now]
        for job_id in expired:
            del queue.leases[job_id]
            job = queue.jobs.get(job_id)
            if job is not None and job.state == JobState.ACTIVE:
                job.state = JobState.WAITING
        return len(expired)
