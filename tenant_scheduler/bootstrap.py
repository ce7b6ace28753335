"""
Startup recovery.

Rebuilds the registry and the worker bindings from the durable catalog.
"""

import logging
from dataclasses import dataclass, field

from tenant_scheduler.catalog.base import CatalogStore, parse_catalog_key, tenant_set_name
from tenant_scheduler.constants import CATALOG_QUEUE_MAP, SPAN_BOOTSTRAP, QueueState
from tenant_scheduler.engine.base import QueueEngine
from tenant_scheduler.errors import SchedulerError
from tenant_scheduler.observability.metrics import get_metrics
from tenant_scheduler.observability.tracing import get_tracer
from tenant_scheduler.registry import QueueRecord, QueueRegistry
from tenant_scheduler.worker.manager import WorkerManager

logger = logging.getLogger(__name__)


@dataclass
class BootstrapFailure:
    """A catalog entry that could not be restored."""

    key: str
    engine_queue_id: str
    error: str


@dataclass
class BootstrapReport:
    """Outcome of a bootstrap run."""

    restored: list[tuple[str, str]] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)
    failed: list[BootstrapFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


async def bootstrap(
    catalog: CatalogStore,
    engine: QueueEngine,
    registry: QueueRegistry,
    workers: WorkerManager,
) -> BootstrapReport:
    """
    Restore every queue recorded in the catalog.

    Each entry is reopened under its stored engine identifier, gets its
    pause flag from the engine and a worker binding. An entry that fails is
    recorded in the report and skipped, as is a second entry pointing at an
    engine queue another entry already restored. Entries already in the
    registry are left alone.

    Raises:
        EngineUnavailableError: If the catalog cannot be read at all.
    """
    metrics = get_metrics()
    report = BootstrapReport()

    with get_tracer().start_as_current_span(SPAN_BOOTSTRAP) as span:
        entries = await catalog.get_all(CATALOG_QUEUE_MAP)
        span.set_attribute("catalog_entries", len(entries))
        logger.info("Bootstrap starting", extra={"catalog_entries": len(entries)})

        for key, engine_queue_id in sorted(entries.items()):
            try:
                tenant_id, queue_name = parse_catalog_key(key)
            except ValueError as e:
                report.failed.append(BootstrapFailure(key, engine_queue_id, str(e)))
                metrics.record_bootstrap_failure()
                logger.error("Skipping malformed catalog entry", extra={"key": key})
                continue

            async with registry.guard((tenant_id, queue_name)):
                if (tenant_id, queue_name) in registry:
                    report.skipped.append((tenant_id, queue_name))
                    continue

                try:
                    registry.claim_engine_queue(engine_queue_id, (tenant_id, queue_name))
                    record = await _restore(catalog, engine, tenant_id, queue_name, engine_queue_id)
                except SchedulerError as e:
                    registry.release_engine_queue(engine_queue_id, (tenant_id, queue_name))
                    report.failed.append(BootstrapFailure(key, engine_queue_id, str(e)))
                    metrics.record_bootstrap_failure()
                    logger.error(
                        "Failed to restore scheduler",
                        extra={"key": key, "engine_queue_id": engine_queue_id, "error": str(e)},
                    )
                    continue

                registry.add(record)
                metrics.record_queue_registered(tenant_id)
                await workers.bind(record)
                report.restored.append((tenant_id, queue_name))

        span.set_attribute("restored", len(report.restored))
        span.set_attribute("failed", len(report.failed))

    logger.info(
        "Bootstrap finished",
        extra={
            "restored": len(report.restored),
            "skipped": len(report.skipped),
            "failed": len(report.failed),
        },
    )
    return report


async def _restore(
    catalog: CatalogStore,
    engine: QueueEngine,
    tenant_id: str,
    queue_name: str,
    engine_queue_id: str,
) -> QueueRecord:
    handle = await engine.create_queue(engine_queue_id)
    try:
        paused = await engine.is_paused(handle)
        set_name = tenant_set_name(tenant_id)
        if queue_name not in await catalog.list_members(set_name):
            logger.warning(
                "Repairing tenant set membership",
                extra={"tenant_id": tenant_id, "queue": queue_name},
            )
            await catalog.add_member(set_name, queue_name)
    except SchedulerError:
        await engine.close_queue(handle)
        raise

    return QueueRecord(
        tenant_id=tenant_id,
        queue_name=queue_name,
        engine_queue_id=engine_queue_id,
        handle=handle,
        state=QueueState.PAUSED if paused else QueueState.ACTIVE,
    )
