"""
Unit tests for the job lifecycle manager.
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from tenant_scheduler.clock import ManualClock
from tenant_scheduler.constants import JobState
from tenant_scheduler.errors import InvalidScheduleError, NotFoundError
from tenant_scheduler.service import SchedulerService
from tenant_scheduler.types.api import JobRequest
from tenant_scheduler.types.job import OneTimeSchedule, RecurringSchedule


@pytest_asyncio.fixture
async def paused_queue(service: SchedulerService) -> SchedulerService:
    """A registered queue whose worker dispatches nothing."""
    await service.create_scheduler("t1", "alpha")
    await service.pause_scheduler("t1", "alpha")
    return service


class TestScheduleTranslation:
    """Tests for schedule spec to engine options translation."""

    @pytest.mark.asyncio
    async def test_one_time_becomes_delay(self, service: SchedulerService, clock: ManualClock):
        options = service.jobs.to_options(OneTimeSchedule(run_at=clock() + timedelta(seconds=5)))

        assert options.delay_ms == 5000
        assert options.repeat is None

    @pytest.mark.asyncio
    async def test_past_run_at_clamped_to_zero(self, service: SchedulerService, clock: ManualClock):
        options = service.jobs.to_options(OneTimeSchedule(run_at=clock() - timedelta(hours=1)))

        assert options.delay_ms == 0

    @pytest.mark.asyncio
    async def test_recurring_limit_passed_through(self, service: SchedulerService):
        options = service.jobs.to_options(RecurringSchedule(cron="*/5 * * * *", limit=3))

        assert options.delay_ms is None
        assert options.repeat.cron == "*/5 * * * *"
        assert options.repeat.limit == 3

    @pytest.mark.asyncio
    async def test_invalid_cron(self, service: SchedulerService):
        with pytest.raises(InvalidScheduleError):
            service.jobs.to_options(RecurringSchedule(cron="every tuesday"))

    @pytest.mark.parametrize(
        "body",
        [
            {"name": "echo"},
            {"name": "echo", "run_at": "2026-01-01T12:00:00Z", "cron": "* * * * *"},
        ],
    )
    def test_request_needs_exactly_one_schedule(self, body: dict):
        with pytest.raises(InvalidScheduleError):
            JobRequest(**body).to_schedule()


class TestJobLifecycle:
    """Tests for job CRUD, pause and resume."""

    @pytest.mark.asyncio
    async def test_create_delayed_job(self, paused_queue: SchedulerService, clock: ManualClock):
        job = await paused_queue.create_job(
            "t1", "alpha", "echo", {"a": 1}, OneTimeSchedule(run_at=clock() + timedelta(seconds=5))
        )

        assert job.is_pending
        assert job.state == JobState.DELAYED
        assert job.options.delay_ms == 5000
        assert (await paused_queue.get_job("t1", "alpha", job.id)).payload == {"a": 1}

    @pytest.mark.asyncio
    async def test_create_on_unknown_queue(self, service: SchedulerService, clock: ManualClock):
        with pytest.raises(NotFoundError):
            await service.create_job("t1", "nope", "echo", {}, OneTimeSchedule(run_at=clock()))

    @pytest.mark.asyncio
    async def test_update_keeps_identity(self, paused_queue: SchedulerService, clock: ManualClock):
        job = await paused_queue.create_job(
            "t1", "alpha", "echo", {"a": 1}, OneTimeSchedule(run_at=clock())
        )

        updated = await paused_queue.update_job(
            "t1", "alpha", job.id, "report", {"b": 2}, RecurringSchedule(cron="0 * * * *", limit=2)
        )

        assert updated.id == job.id
        assert updated.name == "report"
        assert updated.payload == {"b": 2}
        assert updated.options.repeat.limit == 2
        assert updated.state == JobState.DELAYED

    @pytest.mark.asyncio
    async def test_update_missing_job(self, paused_queue: SchedulerService, clock: ManualClock):
        with pytest.raises(NotFoundError) as exc_info:
            await paused_queue.update_job(
                "t1", "alpha", "missing", "echo", {}, OneTimeSchedule(run_at=clock())
            )
        assert exc_info.value.kind == "job"

    @pytest.mark.asyncio
    async def test_delete_job(self, paused_queue: SchedulerService, clock: ManualClock):
        job = await paused_queue.create_job("t1", "alpha", "echo", {}, OneTimeSchedule(run_at=clock()))

        await paused_queue.delete_job("t1", "alpha", job.id)

        with pytest.raises(NotFoundError):
            await paused_queue.get_job("t1", "alpha", job.id)
        with pytest.raises(NotFoundError):
            await paused_queue.delete_job("t1", "alpha", job.id)

    @pytest.mark.asyncio
    async def test_pause_and_resume_job(self, paused_queue: SchedulerService, clock: ManualClock):
        job = await paused_queue.create_job(
            "t1", "alpha", "echo", {}, OneTimeSchedule(run_at=clock() + timedelta(seconds=30))
        )

        paused = await paused_queue.pause_job("t1", "alpha", job.id)
        assert paused.state == JobState.PAUSED

        again = await paused_queue.pause_job("t1", "alpha", job.id)
        assert again.state == JobState.PAUSED

        resumed = await paused_queue.resume_job("t1", "alpha", job.id)
        assert resumed.state == JobState.DELAYED

        with pytest.raises(NotFoundError):
            await paused_queue.resume_job("t1", "alpha", "missing")

    @pytest.mark.asyncio
    async def test_list_jobs_partitions(self, paused_queue: SchedulerService, clock: ManualClock):
        waiting = await paused_queue.create_job("t1", "alpha", "echo", {}, OneTimeSchedule(run_at=clock()))
        delayed = await paused_queue.create_job(
            "t1", "alpha", "echo", {}, OneTimeSchedule(run_at=clock() + timedelta(minutes=1))
        )
        held = await paused_queue.create_job("t1", "alpha", "echo", {}, OneTimeSchedule(run_at=clock()))
        await paused_queue.pause_job("t1", "alpha", held.id)

        listing = await paused_queue.list_jobs("t1", "alpha")

        assert [j.id for j in listing.waiting] == [waiting.id]
        assert [j.id for j in listing.delayed] == [delayed.id]
        assert [j.id for j in listing.paused] == [held.id]
        assert listing.active == []
        assert listing.completed == []
        assert listing.failed == []
        assert listing.total == 3
