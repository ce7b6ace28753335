"""
Integration tests for the SQL catalog store and the SQL queue engine.

Run against SQLite through aiosqlite; FOR UPDATE SKIP LOCKED is only
exercised on PostgreSQL.
"""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_scheduler.catalog import SqlCatalogStore
from tenant_scheduler.clock import ManualClock
from tenant_scheduler.constants import PURGE_STATES, JobState
from tenant_scheduler.engine import SqlQueueEngine
from tenant_scheduler.service import SchedulerService
from tenant_scheduler.types.job import JobOptions, OneTimeSchedule, RepeatOptions


class TestSqlCatalogStore:
    """Tests for SqlCatalogStore."""

    @pytest.mark.asyncio
    async def test_sets(self, session_factory: async_sessionmaker[AsyncSession]):
        store = SqlCatalogStore(session_factory)

        await store.add_member("tenant_queue:t1", "alpha")
        await store.add_member("tenant_queue:t1", "alpha")
        await store.add_member("tenant_queue:t1", "beta")
        assert await store.list_members("tenant_queue:t1") == {"alpha", "beta"}

        await store.remove_member("tenant_queue:t1", "alpha")
        await store.remove_member("tenant_queue:t1", "missing")
        assert await store.list_members("tenant_queue:t1") == {"beta"}

    @pytest.mark.asyncio
    async def test_maps(self, session_factory: async_sessionmaker[AsyncSession]):
        store = SqlCatalogStore(session_factory)

        await store.set("tenant_queues", "t1:alpha", "t1-alpha")
        await store.set("tenant_queues", "t1:alpha", "t1-alpha-2")
        await store.set("tenant_queues", "t2:beta", "t2-beta")

        assert await store.get("tenant_queues", "t1:alpha") == "t1-alpha-2"
        assert await store.get_all("tenant_queues") == {
            "t1:alpha": "t1-alpha-2",
            "t2:beta": "t2-beta",
        }

        await store.delete("tenant_queues", "t1:alpha")
        assert await store.get("tenant_queues", "t1:alpha") is None


class TestSqlQueueEngine:
    """Tests for SqlQueueEngine."""

    @pytest.mark.asyncio
    async def test_job_lifecycle(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: ManualClock,
    ):
        engine = SqlQueueEngine(session_factory, clock=clock)
        handle = await engine.create_queue("t1-alpha")

        job = await engine.add_job(handle, "echo", {"a": 1}, JobOptions(delay_ms=5000))
        assert job.state == JobState.DELAYED
        assert await engine.fetch_next(handle) is None

        clock.advance(5)
        leased = await engine.fetch_next(handle)
        assert leased.id == job.id
        assert leased.state == JobState.ACTIVE
        assert leased.attempts_made == 1

        done = await engine.complete_job(handle, job.id, {"ok": True})
        assert done.state == JobState.COMPLETED
        assert done.result == {"ok": True}
        assert await engine.fail_job(handle, job.id, "late") is None

    @pytest.mark.asyncio
    async def test_recurring_follower(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: ManualClock,
    ):
        engine = SqlQueueEngine(session_factory, clock=clock)
        handle = await engine.create_queue("t1-alpha")
        options = JobOptions(repeat=RepeatOptions(cron="* * * * *", limit=2))

        first = await engine.add_job(handle, "tick", {}, options)
        assert first.repeat_key == first.id
        assert first.repeat_count == 1

        clock.advance(60)
        assert (await engine.fetch_next(handle)).id == first.id

        delayed = await engine.get_jobs(handle, [JobState.DELAYED])
        assert len(delayed) == 1
        assert delayed[0].repeat_count == 2
        assert delayed[0].run_at == clock() + timedelta(minutes=1)

        clock.advance(60)
        assert (await engine.fetch_next(handle)).id == delayed[0].id
        assert await engine.get_jobs(handle, [JobState.WAITING, JobState.DELAYED]) == []

    @pytest.mark.asyncio
    async def test_pause_purge_and_recover(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: ManualClock,
    ):
        engine = SqlQueueEngine(session_factory, clock=clock, lease_duration_seconds=30)
        handle = await engine.create_queue("t1-alpha")
        job = await engine.add_job(handle, "echo", {}, JobOptions(delay_ms=0))

        await engine.pause(handle)
        assert await engine.is_paused(handle) is True
        assert await engine.fetch_next(handle) is None
        await engine.resume(handle)

        await engine.fetch_next(handle)
        clock.advance(31)
        assert await engine.recover_stalled(handle) == 1
        assert (await engine.get_job(handle, job.id)).state == JobState.WAITING

        paused = await engine.pause_job(handle, job.id)
        assert paused.state == JobState.PAUSED

        assert await engine.purge(handle, PURGE_STATES) == 1
        assert await engine.get_job(handle, job.id) is None


class TestSqlBackedService:
    """Restart recovery with both SQL backends."""

    @pytest.mark.asyncio
    async def test_restart_restores_queues_and_jobs(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: ManualClock,
    ):
        def build() -> SchedulerService:
            return SchedulerService(
                SqlCatalogStore(session_factory),
                SqlQueueEngine(session_factory, clock=clock),
                clock=clock,
                poll_interval=0.05,
                shutdown_timeout=1.0,
            )

        first = build()
        await first.start()
        await first.create_scheduler("t1", "alpha")
        await first.create_scheduler("t1", "beta")
        job = await first.create_job(
            "t1", "beta", "echo", {"x": 1}, OneTimeSchedule(run_at=clock() + timedelta(hours=1))
        )
        await first.shutdown()

        second = build()
        report = await second.start()
        try:
            assert second.list_schedulers("t1") == ["alpha", "beta"]
            assert len(report.restored) == 2
            restored = await second.get_job("t1", "beta", job.id)
            assert restored.payload == {"x": 1}
            assert restored.state == JobState.DELAYED
        finally:
            await second.shutdown()
