"""
SQL-backed queue engine.

Stores queues and jobs in the engine_queues / engine_jobs tables. Dispatch
leases jobs with SELECT ... FOR UPDATE SKIP LOCKED so concurrent workers
never receive the same job; a lease that expires (worker crash) returns the
job to WAITING, giving at-least-once delivery.
"""

import logging
from collections.abc import Iterable
from datetime import timedelta
from typing import Any
from uuid import uuid4

from sqlalchemy import and_, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_scheduler.clock import Clock, ensure_utc, utcnow
from tenant_scheduler.constants import PENDING_STATES, TERMINAL_STATES, JobState
from tenant_scheduler.db.connection import session_scope
from tenant_scheduler.db.models import EngineJob, EngineQueue
from tenant_scheduler.engine.base import (
    QueueEngine,
    QueueHandle,
    has_next_occurrence,
    initial_run_at,
    next_occurrence_at,
    pending_state,
)
from tenant_scheduler.types.job import JobOptions, JobRecord, RepeatOptions

logger = logging.getLogger(__name__)


def _options_of(job: EngineJob) -> JobOptions:
    if job.repeat_cron is not None:
        return JobOptions(repeat=RepeatOptions(cron=job.repeat_cron, limit=job.repeat_limit))
    return JobOptions(delay_ms=job.delay_ms or 0)


def _apply_options(job: EngineJob, options: JobOptions) -> None:
    if options.repeat is not None:
        job.delay_ms = None
        job.repeat_cron = options.repeat.cron
        job.repeat_limit = options.repeat.limit
        if job.repeat_key is None:
            job.repeat_key = job.id
            job.repeat_count = 1
    else:
        job.delay_ms = options.delay_ms
        job.repeat_cron = None
        job.repeat_limit = None
        job.repeat_key = None
        job.repeat_count = 0


def _to_record(job: EngineJob) -> JobRecord:
    return JobRecord(
        id=job.id,
        queue=job.queue_name,
        name=job.name,
        payload=dict(job.payload or {}),
        options=_options_of(job),
        state=JobState(job.state),
        run_at=ensure_utc(job.run_at),
        created_at=ensure_utc(job.created_at),
        processed_at=ensure_utc(job.processed_at) if job.processed_at else None,
        finished_at=ensure_utc(job.finished_at) if job.finished_at else None,
        attempts_made=job.attempts_made,
        repeat_key=job.repeat_key,
        repeat_count=job.repeat_count,
        result=job.result,
        failed_reason=job.last_error,
    )


class SqlQueueEngine(QueueEngine):
    """
    Queue engine on PostgreSQL (any SQLAlchemy async dialect works for
    single-process use).

    Each method runs in its own transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utcnow,
        lease_duration_seconds: float = 30.0,
    ):
        """
        Initialize the engine.

        Args:
            session_factory: Factory producing async database sessions.
            clock: Time source for delays, cron repeats and leases.
            lease_duration_seconds: Lease granted to a dispatched job.
        """
        self._session_factory = session_factory
        self._clock = clock
        self._lease_duration = timedelta(seconds=lease_duration_seconds)

    async def _get_job(
        self,
        session: AsyncSession,
        handle: QueueHandle,
        job_id: str,
    ) -> EngineJob | None:
        stmt = select(EngineJob).where(
            and_(EngineJob.id == job_id, EngineJob.queue_name == handle.name)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def _promote_due(self, session: AsyncSession, handle: QueueHandle) -> None:
        await session.execute(
            update(EngineJob)
            .where(
                and_(
                    EngineJob.queue_name == handle.name,
                    EngineJob.state == JobState.DELAYED,
                    EngineJob.run_at <= self._clock(),
                )
            )
            .values(state=JobState.WAITING)
        )

    # Queue operations

    async def create_queue(self, name: str) -> QueueHandle:
        async with session_scope(self._session_factory) as session:
            queue = await session.get(EngineQueue, name)
            if queue is None:
                session.add(EngineQueue(name=name, paused=False, created_at=self._clock()))
                logger.info("Created engine queue", extra={"queue": name})
        return QueueHandle(name=name)

    async def close_queue(self, handle: QueueHandle) -> None:
        handle.closed = True

    async def pause(self, handle: QueueHandle) -> None:
        await self._set_paused(handle, True)

    async def resume(self, handle: QueueHandle) -> None:
        await self._set_paused(handle, False)

    async def _set_paused(self, handle: QueueHandle, paused: bool) -> None:
        self.ensure_open(handle)
        async with session_scope(self._session_factory) as session:
            await session.execute(
                update(EngineQueue)
                .where(EngineQueue.name == handle.name)
                .values(paused=paused)
            )

    async def is_paused(self, handle: QueueHandle) -> bool:
        self.ensure_open(handle)
        async with session_scope(self._session_factory) as session:
            queue = await session.get(EngineQueue, handle.name)
            return bool(queue and queue.paused)

    async def purge(self, handle: QueueHandle, states: Iterable[JobState]) -> int:
        self.ensure_open(handle)
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                delete(EngineJob).where(
                    and_(
                        EngineJob.queue_name == handle.name,
                        EngineJob.state.in_(list(states)),
                    )
                )
            )
            count = result.rowcount or 0

        logger.info("Purged engine queue", extra={"queue": handle.name, "removed": count})
        return count

    # Job operations

    async def add_job(
        self,
        handle: QueueHandle,
        name: str,
        payload: dict[str, Any],
        options: JobOptions,
    ) -> JobRecord:
        self.ensure_open(handle)
        now = self._clock()
        run_at = initial_run_at(options, now)
        async with session_scope(self._session_factory) as session:
            job = EngineJob(
                id=uuid4().hex,
                queue_name=handle.name,
                name=name,
                payload=dict(payload),
                state=pending_state(run_at, now),
                run_at=run_at,
                created_at=now,
                repeat_count=0,
                attempts_made=0,
                lease_expires_at=None,
                processed_at=None,
                finished_at=None,
                last_error=None,
                result=None,
            )
            _apply_options(job, options)
            session.add(job)
            await session.flush()
            return _to_record(job)

    async def get_job(self, handle: QueueHandle, job_id: str) -> JobRecord | None:
        self.ensure_open(handle)
        async with session_scope(self._session_factory) as session:
            await self._promote_due(session, handle)
            job = await self._get_job(session, handle, job_id)
            return _to_record(job) if job is not None else None

    async def get_jobs(
        self,
        handle: QueueHandle,
        states: Iterable[JobState],
    ) -> list[JobRecord]:
        self.ensure_open(handle)
        async with session_scope(self._session_factory) as session:
            await self._promote_due(session, handle)
            result = await session.execute(
                select(EngineJob)
                .where(
                    and_(
                        EngineJob.queue_name == handle.name,
                        EngineJob.state.in_(list(states)),
                    )
                )
                .order_by(EngineJob.run_at, EngineJob.created_at, EngineJob.id)
            )
            return [_to_record(job) for job in result.scalars().all()]

    async def update_job(
        self,
        handle: QueueHandle,
        job_id: str,
        name: str,
        payload: dict[str, Any],
        options: JobOptions,
    ) -> JobRecord | None:
        self.ensure_open(handle)
        now = self._clock()
        async with session_scope(self._session_factory) as session:
            job = await self._get_job(session, handle, job_id)
            if job is None:
                return None

            job.name = name
            job.payload = dict(payload)
            _apply_options(job, options)

            if job.state == JobState.PAUSED:
                job.run_at = initial_run_at(options, now)
            elif job.state != JobState.ACTIVE:
                if job.state in TERMINAL_STATES:
                    logger.info(
                        "Re-arming finished job",
                        extra={"job_id": job_id, "queue": handle.name, "state": str(job.state)},
                    )
                    job.processed_at = None
                    job.finished_at = None
                    job.result = None
                    job.last_error = None
                job.run_at = initial_run_at(options, now)
                job.state = pending_state(job.run_at, now)

            await session.flush()
            return _to_record(job)

    async def remove_job(self, handle: QueueHandle, job_id: str) -> bool:
        self.ensure_open(handle)
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                delete(EngineJob).where(
                    and_(EngineJob.id == job_id, EngineJob.queue_name == handle.name)
                )
            )
            return (result.rowcount or 0) > 0

    async def pause_job(self, handle: QueueHandle, job_id: str) -> JobRecord | None:
        self.ensure_open(handle)
        async with session_scope(self._session_factory) as session:
            job = await self._get_job(session, handle, job_id)
            if job is None:
                return None
            if job.state in PENDING_STATES:
                job.state = JobState.PAUSED
                await session.flush()
            return _to_record(job)

    async def resume_job(self, handle: QueueHandle, job_id: str) -> JobRecord | None:
        self.ensure_open(handle)
        async with session_scope(self._session_factory) as session:
            job = await self._get_job(session, handle, job_id)
            if job is None:
                return None
            if job.state == JobState.PAUSED:
                job.state = pending_state(ensure_utc(job.run_at), self._clock())
                await session.flush()
            return _to_record(job)

    # Worker operations

    async def fetch_next(self, handle: QueueHandle) -> JobRecord | None:
        """
        Lease the next due job of the queue.

        Uses FOR UPDATE SKIP LOCKED so two workers polling the same queue
        never lease the same row.
        """
        self.ensure_open(handle)
        now = self._clock()
        async with session_scope(self._session_factory) as session:
            queue = await session.get(EngineQueue, handle.name)
            if queue is None or queue.paused:
                return None

            stmt = (
                select(EngineJob)
                .where(
                    and_(
                        EngineJob.queue_name == handle.name,
                        EngineJob.state.in_([JobState.WAITING, JobState.DELAYED]),
                        EngineJob.run_at <= now,
                    )
                )
                .order_by(EngineJob.run_at, EngineJob.created_at, EngineJob.id)
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            result = await session.execute(stmt)
            job = result.scalar_one_or_none()
            if job is None:
                return None

            job.state = JobState.ACTIVE
            job.attempts_made += 1
            job.processed_at = now
            job.lease_expires_at = now + self._lease_duration

            options = _options_of(job)
            if has_next_occurrence(options, job.repeat_count):
                run_at = next_occurrence_at(options, ensure_utc(job.run_at), now)
                session.add(
                    EngineJob(
                        queue_name=job.queue_name,
                        name=job.name,
                        payload=dict(job.payload or {}),
                        state=pending_state(run_at, now),
                        run_at=run_at,
                        created_at=now,
                        repeat_cron=job.repeat_cron,
                        repeat_limit=job.repeat_limit,
                        repeat_key=job.repeat_key,
                        repeat_count=job.repeat_count + 1,
                        attempts_made=0,
                        delay_ms=None,
                        lease_expires_at=None,
                        processed_at=None,
                        finished_at=None,
                        last_error=None,
                        result=None,
                    )
                )

            await session.flush()
            logger.debug(
                "Leased job",
                extra={"job_id": job.id, "queue": handle.name, "attempt": job.attempts_made},
            )
            return _to_record(job)

    async def complete_job(
        self,
        handle: QueueHandle,
        job_id: str,
        result: dict[str, Any] | None = None,
    ) -> JobRecord | None:
        return await self._finish(handle, job_id, JobState.COMPLETED, result=result)

    async def fail_job(
        self,
        handle: QueueHandle,
        job_id: str,
        error: str,
    ) -> JobRecord | None:
        return await self._finish(handle, job_id, JobState.FAILED, error=error)

    async def _finish(
        self,
        handle: QueueHandle,
        job_id: str,
        state: JobState,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> JobRecord | None:
        self.ensure_open(handle)
        now = self._clock()
        async with session_scope(self._session_factory) as session:
            stmt = (
                update(EngineJob)
                .where(
                    and_(
                        EngineJob.id == job_id,
                        EngineJob.queue_name == handle.name,
                        EngineJob.state == JobState.ACTIVE,
                    )
                )
                .values(
                    state=state,
                    finished_at=now,
                    lease_expires_at=None,
                    result=result,
                    last_error=error,
                )
            )
            updated = await session.execute(stmt)
            if not updated.rowcount:
                return None
            job = await self._get_job(session, handle, job_id)
            return _to_record(job) if job is not None else None

    async def recover_stalled(self, handle: QueueHandle) -> int:
        """
        Recover jobs whose lease expired.

        Called when a worker binds to the queue, so jobs left ACTIVE by a
        crashed process are dispatched again.
        """
        self.ensure_open(handle)
        now = self._clock()
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                update(EngineJob)
                .where(
                    and_(
                        EngineJob.queue_name == handle.name,
                        EngineJob.state == JobState.ACTIVE,
                        EngineJob.lease_expires_at < now,
                    )
                )
                .values(
                    state=JobState.WAITING,
                    lease_expires_at=None,
                )
            )
            count = result.rowcount or 0

        if count > 0:
            logger.info(
                f"Recovered {count} jobs with expired leases",
                extra={"queue": handle.name},
            )
        return count
