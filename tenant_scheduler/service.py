"""
Scheduler service facade.

Owns the registry, the managers and the worker bindings for one process,
and exposes the operations offered to the routing layer.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_scheduler.bootstrap import BootstrapReport, bootstrap
from tenant_scheduler.catalog import CatalogStore, MemoryCatalogStore, SqlCatalogStore
from tenant_scheduler.clock import Clock, utcnow
from tenant_scheduler.config import Settings, get_settings
from tenant_scheduler.engine import MemoryQueueEngine, QueueEngine, SqlQueueEngine
from tenant_scheduler.jobs import JobManager
from tenant_scheduler.registry import QueueRecord, QueueRegistry
from tenant_scheduler.schedulers import SchedulerManager
from tenant_scheduler.types.job import JobListing, JobRecord, ScheduleSpec
from tenant_scheduler.worker.handlers import JobHandler
from tenant_scheduler.worker.manager import WorkerManager

logger = logging.getLogger(__name__)


class SchedulerService:
    """
    Explicit state container for the scheduler core.

    The registry starts empty; start() fills it from the catalog and
    shutdown() stops every worker binding and closes the stores.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        engine: QueueEngine,
        clock: Clock = utcnow,
        handler: JobHandler | None = None,
        poll_interval: float | None = None,
        shutdown_timeout: float | None = None,
        recovery_interval: float | None = None,
    ):
        self.catalog = catalog
        self.engine = engine
        self.registry = QueueRegistry()
        self.workers = WorkerManager(
            engine,
            handler=handler,
            poll_interval=poll_interval,
            shutdown_timeout=shutdown_timeout,
            recovery_interval=recovery_interval,
        )
        self.schedulers = SchedulerManager(self.registry, catalog, engine, self.workers)
        self.jobs = JobManager(self.registry, engine, clock=clock)
        self.started = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> "SchedulerService":
        """
        Build a service with the backends named in the settings.

        Args:
            settings: Application settings; defaults to get_settings().
            session_factory: Required when either backend is "sql".
        """
        settings = settings or get_settings()
        uses_sql = "sql" in (settings.catalog_backend, settings.engine_backend)
        if uses_sql and session_factory is None:
            raise ValueError("A session factory is required for the sql backends")

        catalog: CatalogStore
        if settings.catalog_backend == "sql":
            catalog = SqlCatalogStore(session_factory)
        else:
            catalog = MemoryCatalogStore()

        engine: QueueEngine
        if settings.engine_backend == "sql":
            engine = SqlQueueEngine(
                session_factory,
                lease_duration_seconds=settings.worker_lease_duration_seconds,
            )
        else:
            engine = MemoryQueueEngine(
                lease_duration_seconds=settings.worker_lease_duration_seconds,
            )

        logger.info(
            "Scheduler service configured",
            extra={"catalog": settings.catalog_backend, "engine": settings.engine_backend},
        )
        return cls(catalog, engine)

    async def start(self) -> BootstrapReport:
        """Rebuild the registry and the worker bindings from the catalog."""
        report = await bootstrap(self.catalog, self.engine, self.registry, self.workers)
        self.started = True
        return report

    async def shutdown(self) -> None:
        """Stop every binding, close every queue handle and the stores."""
        await self.workers.close()
        for record in self.registry.records():
            await self.engine.close_queue(record.handle)
        self.registry.clear()
        await self.engine.close()
        await self.catalog.close()
        self.started = False
        logger.info("Scheduler service stopped")

    # Schedulers

    async def create_scheduler(self, tenant_id: str, queue_name: str) -> QueueRecord:
        return await self.schedulers.register_queue(tenant_id, queue_name)

    def get_scheduler(self, tenant_id: str, queue_name: str) -> QueueRecord:
        return self.schedulers.lookup_queue(tenant_id, queue_name)

    async def rename_scheduler(
        self,
        tenant_id: str,
        queue_name: str,
        new_queue_name: str,
    ) -> QueueRecord:
        return await self.schedulers.rename_queue(tenant_id, queue_name, new_queue_name)

    async def delete_scheduler(self, tenant_id: str, queue_name: str) -> None:
        await self.schedulers.delete_queue(tenant_id, queue_name)

    async def pause_scheduler(self, tenant_id: str, queue_name: str) -> QueueRecord:
        return await self.schedulers.pause_queue(tenant_id, queue_name)

    async def resume_scheduler(self, tenant_id: str, queue_name: str) -> QueueRecord:
        return await self.schedulers.resume_queue(tenant_id, queue_name)

    async def rebind_scheduler(self, tenant_id: str, queue_name: str) -> QueueRecord:
        return await self.schedulers.rebind_queue(tenant_id, queue_name)

    def list_schedulers(self, tenant_id: str) -> list[str]:
        return self.schedulers.list_schedulers(tenant_id)

    # Jobs

    async def create_job(
        self,
        tenant_id: str,
        queue_name: str,
        name: str,
        payload: dict[str, Any],
        schedule: ScheduleSpec,
    ) -> JobRecord:
        return await self.jobs.create_job(tenant_id, queue_name, name, payload, schedule)

    async def update_job(
        self,
        tenant_id: str,
        queue_name: str,
        job_id: str,
        name: str,
        payload: dict[str, Any],
        schedule: ScheduleSpec,
    ) -> JobRecord:
        return await self.jobs.update_job(tenant_id, queue_name, job_id, name, payload, schedule)

    async def delete_job(self, tenant_id: str, queue_name: str, job_id: str) -> None:
        await self.jobs.delete_job(tenant_id, queue_name, job_id)

    async def pause_job(self, tenant_id: str, queue_name: str, job_id: str) -> JobRecord:
        return await self.jobs.pause_job(tenant_id, queue_name, job_id)

    async def resume_job(self, tenant_id: str, queue_name: str, job_id: str) -> JobRecord:
        return await self.jobs.resume_job(tenant_id, queue_name, job_id)

    async def get_job(self, tenant_id: str, queue_name: str, job_id: str) -> JobRecord:
        return await self.jobs.get_job(tenant_id, queue_name, job_id)

    async def list_jobs(self, tenant_id: str, queue_name: str) -> JobListing:
        return await self.jobs.list_jobs(tenant_id, queue_name)
