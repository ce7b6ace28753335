"""
Registry & catalog manager.

Creates, renames, pauses and deletes queues while keeping the in-memory
registry, the durable catalog and the queue engine consistent.
"""

import logging
from collections.abc import Awaitable, Callable

from tenant_scheduler.catalog.base import CatalogStore, catalog_key, tenant_set_name
from tenant_scheduler.constants import CATALOG_QUEUE_MAP, PURGE_STATES, QueueState
from tenant_scheduler.engine.base import QueueEngine, QueueHandle
from tenant_scheduler.errors import (
    AlreadyExistsError,
    EngineInconsistentError,
    SchedulerError,
)
from tenant_scheduler.observability.metrics import get_metrics
from tenant_scheduler.registry import QueueRecord, QueueRegistry, engine_queue_name
from tenant_scheduler.worker.manager import WorkerManager

logger = logging.getLogger(__name__)


class SchedulerManager:
    """Queue lifecycle over the registry, the catalog and the engine."""

    def __init__(
        self,
        registry: QueueRegistry,
        catalog: CatalogStore,
        engine: QueueEngine,
        workers: WorkerManager,
    ):
        self._registry = registry
        self._catalog = catalog
        self._engine = engine
        self._workers = workers
        self._metrics = get_metrics()

    async def register_queue(self, tenant_id: str, queue_name: str) -> QueueRecord:
        """
        Register a new queue and bind a worker to it.

        The catalog entry is durable before the record becomes visible, so a
        restart can never lose a queue a caller has seen.

        Raises:
            AlreadyExistsError: If the queue is already registered, or its
                engine queue id belongs to another queue.
            EngineUnavailableError: If the engine or the catalog failed.
        """
        key = (tenant_id, queue_name)
        engine_queue_id = engine_queue_name(tenant_id, queue_name)

        async with self._registry.guard(key):
            if key in self._registry:
                raise AlreadyExistsError(tenant_id, queue_name)

            await self._claim_engine_queue(tenant_id, queue_name, engine_queue_id)
            handle = None
            try:
                handle = await self._open_queue(engine_queue_id)
                await self._catalog.set(
                    CATALOG_QUEUE_MAP, catalog_key(tenant_id, queue_name), engine_queue_id
                )
                await self._catalog.add_member(tenant_set_name(tenant_id), queue_name)
            except SchedulerError:
                if handle is not None:
                    await self._engine.close_queue(handle)
                self._registry.release_engine_queue(engine_queue_id, key)
                raise

            record = QueueRecord(
                tenant_id=tenant_id,
                queue_name=queue_name,
                engine_queue_id=engine_queue_id,
                handle=handle,
            )
            self._registry.add(record)
            self._metrics.record_queue_registered(tenant_id)
            await self._workers.bind(record)

        logger.info(
            "Scheduler registered",
            extra={"tenant_id": tenant_id, "queue": queue_name, "engine_queue_id": engine_queue_id},
        )
        return record

    def lookup_queue(self, tenant_id: str, queue_name: str) -> QueueRecord:
        return self._registry.get(tenant_id, queue_name)

    def list_schedulers(self, tenant_id: str) -> list[str]:
        return self._registry.list_queues(tenant_id)

    async def rename_queue(
        self,
        tenant_id: str,
        old_name: str,
        new_name: str,
    ) -> QueueRecord:
        """
        Move a queue to a new name.

        Jobs are not migrated: they stay in the engine under the old
        identifier, which is paused and closed. If any engine or catalog
        step fails, the catalog and the old queue are put back as they were
        before the error is raised.

        Raises:
            NotFoundError: If the old queue is not registered.
            AlreadyExistsError: If the new name, or the engine queue id it
                derives, is taken.
            EngineUnavailableError: If the engine or the catalog failed.
        """
        new_key = (tenant_id, new_name)
        engine_queue_id = engine_queue_name(tenant_id, new_name)
        set_name = tenant_set_name(tenant_id)

        async with self._registry.guard((tenant_id, old_name), new_key):
            old = self._registry.get(tenant_id, old_name)
            if new_key in self._registry:
                raise AlreadyExistsError(tenant_id, new_name)

            await self._claim_engine_queue(tenant_id, new_name, engine_queue_id)
            paused_old = not old.is_paused
            handle = None
            try:
                if paused_old:
                    await self._engine.pause(old.handle)
                    old.state = QueueState.PAUSED
                handle = await self._open_queue(engine_queue_id)
                await self._catalog.set(
                    CATALOG_QUEUE_MAP, catalog_key(tenant_id, new_name), engine_queue_id
                )
                await self._catalog.add_member(set_name, new_name)
                await self._catalog.delete(CATALOG_QUEUE_MAP, catalog_key(tenant_id, old_name))
                await self._catalog.remove_member(set_name, old_name)
            except SchedulerError as e:
                logger.error(
                    "Rename failed, restoring previous scheduler",
                    extra={"tenant_id": tenant_id, "queue": old_name, "error": str(e)},
                )
                await self._undo_rename(old, new_name, handle, paused_old)
                self._registry.release_engine_queue(engine_queue_id, new_key)
                raise

            record = QueueRecord(
                tenant_id=tenant_id,
                queue_name=new_name,
                engine_queue_id=engine_queue_id,
                handle=handle,
            )
            self._registry.remove(tenant_id, old_name)
            self._registry.add(record)
            await self._workers.bind(record)

            await self._workers.unbind(old.engine_queue_id)
            await self._engine.close_queue(old.handle)

        logger.info(
            "Scheduler renamed",
            extra={"tenant_id": tenant_id, "old_queue": old_name, "queue": new_name},
        )
        return record

    async def _undo_rename(
        self,
        old: QueueRecord,
        new_name: str,
        handle: QueueHandle | None,
        resume_old: bool,
    ) -> None:
        """Best-effort rollback of a failed rename; every step is attempted."""
        tenant_id = old.tenant_id
        set_name = tenant_set_name(tenant_id)
        steps: list[tuple[str, Callable[[], Awaitable[None]]]] = [
            (
                "restore catalog entry",
                lambda: self._catalog.set(
                    CATALOG_QUEUE_MAP, catalog_key(tenant_id, old.queue_name), old.engine_queue_id
                ),
            ),
            ("restore tenant membership", lambda: self._catalog.add_member(set_name, old.queue_name)),
            (
                "drop new catalog entry",
                lambda: self._catalog.delete(CATALOG_QUEUE_MAP, catalog_key(tenant_id, new_name)),
            ),
            ("drop new tenant membership", lambda: self._catalog.remove_member(set_name, new_name)),
        ]
        if handle is not None:
            steps.append(("close new engine queue", lambda: self._engine.close_queue(handle)))

        for label, step in steps:
            try:
                await step()
            except SchedulerError as e:
                logger.error(
                    f"Rename rollback could not {label}",
                    extra={"tenant_id": tenant_id, "queue": old.queue_name, "error": str(e)},
                )

        if resume_old and old.is_paused:
            try:
                await self._engine.resume(old.handle)
                old.state = QueueState.ACTIVE
            except SchedulerError as e:
                logger.error(
                    "Rename rollback left the scheduler paused",
                    extra={"tenant_id": tenant_id, "queue": old.queue_name, "error": str(e)},
                )

    async def delete_queue(self, tenant_id: str, queue_name: str) -> None:
        """
        Delete a queue together with every job it holds.

        Safe to retry: if a step fails after the worker was stopped, the
        queue stays registered and in the catalog, gets its worker back, and
        the next attempt starts over.

        Raises:
            NotFoundError: If the queue is not registered.
            EngineInconsistentError: If the jobs could not be purged, or the
                catalog could not be updated after the purge.
        """
        async with self._registry.guard((tenant_id, queue_name)):
            record = self._registry.get(tenant_id, queue_name)

            await self._workers.unbind(record.engine_queue_id)

            try:
                if record.handle.closed:
                    record.handle = await self._engine.create_queue(record.engine_queue_id)
                purged = await self._engine.purge(record.handle, PURGE_STATES)
            except SchedulerError as e:
                logger.error(
                    "Purge failed, scheduler kept for retry",
                    extra={"tenant_id": tenant_id, "queue": queue_name, "error": str(e)},
                )
                await self._restore_binding(record)
                raise EngineInconsistentError(
                    f"Failed to purge jobs of {tenant_id}/{queue_name}: {e}"
                ) from e

            try:
                await self._catalog.remove_member(tenant_set_name(tenant_id), queue_name)
                await self._catalog.delete(CATALOG_QUEUE_MAP, catalog_key(tenant_id, queue_name))
            except SchedulerError as e:
                logger.error(
                    "Catalog update failed after purge, scheduler kept for retry",
                    extra={"tenant_id": tenant_id, "queue": queue_name, "error": str(e)},
                )
                await self._restore_binding(record)
                raise EngineInconsistentError(
                    f"Jobs of {tenant_id}/{queue_name} were purged but the catalog "
                    f"still lists it: {e}"
                ) from e

            await self._engine.close_queue(record.handle)
            self._registry.remove(tenant_id, queue_name)
            self._metrics.record_queue_removed(tenant_id)

        logger.info(
            "Scheduler deleted",
            extra={"tenant_id": tenant_id, "queue": queue_name, "purged_jobs": purged},
        )

    async def _restore_binding(self, record: QueueRecord) -> None:
        """Give a queue whose delete failed its worker back."""
        try:
            if record.handle.closed:
                record.handle = await self._engine.create_queue(record.engine_queue_id)
            await self._workers.bind(record)
        except SchedulerError as e:
            logger.error(
                "Could not rebind worker, scheduler stalls until rebound",
                extra={"tenant_id": record.tenant_id, "queue": record.queue_name, "error": str(e)},
            )

    async def _open_queue(self, engine_queue_id: str) -> QueueHandle:
        """Open an engine queue for a new registration, active."""
        handle = await self._engine.create_queue(engine_queue_id)
        try:
            if await self._engine.is_paused(handle):
                await self._engine.resume(handle)
        except SchedulerError:
            await self._engine.close_queue(handle)
            raise
        return handle

    async def _claim_engine_queue(
        self,
        tenant_id: str,
        queue_name: str,
        engine_queue_id: str,
    ) -> None:
        """
        Reserve an engine queue id for (tenant_id, queue_name).

        The id is refused when another registered queue owns it, or when
        the catalog maps another key to it (an entry bootstrap could not
        restore, for example).

        Raises:
            AlreadyExistsError: If the id belongs to another queue.
        """
        key = (tenant_id, queue_name)
        self._registry.claim_engine_queue(engine_queue_id, key)
        try:
            entries = await self._catalog.get_all(CATALOG_QUEUE_MAP)
        except SchedulerError:
            self._registry.release_engine_queue(engine_queue_id, key)
            raise

        own_key = catalog_key(tenant_id, queue_name)
        for other_key, other_id in entries.items():
            if other_id == engine_queue_id and other_key != own_key:
                self._registry.release_engine_queue(engine_queue_id, key)
                raise AlreadyExistsError(
                    tenant_id,
                    queue_name,
                    message=f"Engine queue {engine_queue_id} belongs to {other_key}",
                )

    async def pause_queue(self, tenant_id: str, queue_name: str) -> QueueRecord:
        """Pause dispatch. A paused queue is left untouched."""
        return await self._set_state(tenant_id, queue_name, QueueState.PAUSED)

    async def resume_queue(self, tenant_id: str, queue_name: str) -> QueueRecord:
        """Resume dispatch. An active queue is left untouched."""
        return await self._set_state(tenant_id, queue_name, QueueState.ACTIVE)

    async def _set_state(
        self,
        tenant_id: str,
        queue_name: str,
        state: QueueState,
    ) -> QueueRecord:
        async with self._registry.guard((tenant_id, queue_name)):
            record = self._registry.get(tenant_id, queue_name)
            if record.state == state:
                return record

            if state == QueueState.PAUSED:
                await self._engine.pause(record.handle)
            else:
                await self._engine.resume(record.handle)
            record.state = state

        logger.info(
            f"Scheduler {state.value}",
            extra={"tenant_id": tenant_id, "queue": queue_name},
        )
        return record

    async def rebind_queue(self, tenant_id: str, queue_name: str) -> QueueRecord:
        """Attach a worker to a registered queue whose binding was lost."""
        async with self._registry.guard((tenant_id, queue_name)):
            record = self._registry.get(tenant_id, queue_name)
            if not self._workers.is_bound(record.engine_queue_id):
                await self._workers.bind(record)
                logger.info(
                    "Scheduler rebound",
                    extra={"tenant_id": tenant_id, "queue": queue_name},
                )
        return record
