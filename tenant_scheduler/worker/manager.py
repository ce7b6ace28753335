"""
Worker bindings: one execution loop per registered queue.

Each binding owns two tasks. The execution loop leases the next eligible
job from the engine and runs the job handler; the outcome consumer reads
JobOutcome messages from the binding's channel and applies them to the
engine. Job state is only ever written back by the consumer.
"""

import asyncio
import logging
import time
from collections.abc import Callable

from tenant_scheduler.config import get_settings
from tenant_scheduler.constants import JobState
from tenant_scheduler.engine.base import QueueEngine
from tenant_scheduler.errors import EngineUnavailableError, SchedulerError
from tenant_scheduler.observability.logging import bind_context
from tenant_scheduler.observability.metrics import get_metrics
from tenant_scheduler.observability.tracing import job_span
from tenant_scheduler.registry import QueueRecord
from tenant_scheduler.types.events import JobOutcome
from tenant_scheduler.types.job import JobContext, JobRecord, JobResult
from tenant_scheduler.worker.handlers import JobHandler, execute_job

logger = logging.getLogger(__name__)


class WorkerBinding:
    """
    Execution loop bound to a single queue.

    Features:
    - Sequential dispatch in engine order
    - Stalled jobs (expired leases) re-queued on start and then every
      recovery_interval seconds
    - Outcomes routed through a per-queue channel
    - Graceful stop that lets the in-flight job finish, or cancels it and
      records it as failed once the timeout passes
    """

    def __init__(
        self,
        engine: QueueEngine,
        record: QueueRecord,
        handler: JobHandler,
        poll_interval: float,
        recovery_interval: float,
        on_crash: Callable[["WorkerBinding", BaseException], None] | None = None,
    ):
        self._engine = engine
        self._record = record
        self._recovery_interval = recovery_interval
        self._next_recovery = 0.0
        self._handler = handler
        self._poll_interval = poll_interval
        self._on_crash = on_crash

        self._outcomes: asyncio.Queue[JobOutcome | None] = asyncio.Queue()
        self._stopping = asyncio.Event()
        self._loop_task: asyncio.Task | None = None
        self._outcome_task: asyncio.Task | None = None
        self._current: asyncio.Task | None = None
        self._cancelling_current = False
        self._metrics = get_metrics()

        self.dispatched = 0

    @property
    def engine_queue_id(self) -> str:
        return self._record.engine_queue_id

    @property
    def record(self) -> QueueRecord:
        return self._record

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def busy(self) -> bool:
        """True while a job handler is executing."""
        return self._current is not None and not self._current.done()

    async def start(self) -> None:
        """Recover stalled jobs of the queue, then start both tasks."""
        await self._recover_stalled()

        self._outcome_task = asyncio.create_task(
            self._consume_outcomes(), name=f"outcomes:{self.engine_queue_id}"
        )
        self._loop_task = asyncio.create_task(
            self._run(), name=f"worker:{self.engine_queue_id}"
        )
        self._loop_task.add_done_callback(self._loop_finished)

        logger.info("Worker bound", extra={"queue": self.engine_queue_id})

    async def stop(self, timeout: float) -> None:
        """
        Stop accepting jobs and wait for the in-flight one.

        Args:
            timeout: Seconds to wait for the in-flight job before cancelling
                it. A cancelled job is reported as failed.
        """
        self._stopping.set()

        if self._loop_task is not None and not self._loop_task.done():
            done, _ = await asyncio.wait({self._loop_task}, timeout=timeout)
            if not done:
                logger.warning(
                    "In-flight job did not finish in time, cancelling",
                    extra={"queue": self.engine_queue_id, "timeout": timeout},
                )
                self._cancelling_current = True
                if self._current is not None:
                    self._current.cancel()
                await asyncio.wait({self._loop_task})

        await self._close_outcomes()
        logger.info("Worker unbound", extra={"queue": self.engine_queue_id})

    async def _close_outcomes(self) -> None:
        if self._outcome_task is None:
            return
        if not self._outcome_task.done():
            await self._outcomes.put(None)
            await self._outcome_task

    def _loop_finished(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error(
            "Worker loop crashed",
            exc_info=exc,
            extra={"queue": self.engine_queue_id},
        )
        self._outcomes.put_nowait(None)
        if self._on_crash is not None:
            self._on_crash(self, exc)

    async def _run(self) -> None:
        bind_context(
            tenant_id=self._record.tenant_id,
            queue=self.engine_queue_id,
        )

        while not self._stopping.is_set():
            if asyncio.get_running_loop().time() >= self._next_recovery:
                await self._recover_stalled()

            try:
                job = await self._engine.fetch_next(self._record.handle)
            except EngineUnavailableError as e:
                logger.warning(
                    "Engine unavailable while polling",
                    extra={"queue": self.engine_queue_id, "error": str(e)},
                )
                await self._idle()
                continue

            if job is None:
                await self._idle()
                continue

            self.dispatched += 1
            await self._outcomes.put(await self._execute(job))

    async def _recover_stalled(self) -> None:
        """Re-queue jobs whose lease expired, for example after a crash."""
        self._next_recovery = asyncio.get_running_loop().time() + self._recovery_interval
        try:
            recovered = await self._engine.recover_stalled(self._record.handle)
        except SchedulerError as e:
            logger.warning(
                "Could not recover stalled jobs",
                extra={"queue": self.engine_queue_id, "error": str(e)},
            )
            return

        if recovered:
            logger.info(
                f"Re-queued {recovered} stalled jobs",
                extra={"queue": self.engine_queue_id},
            )

    async def _idle(self) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self._poll_interval)
        except TimeoutError:
            pass

    async def _execute(self, job: JobRecord) -> JobOutcome:
        """Run the handler for one job and turn the result into an outcome."""
        start_time = time.monotonic()
        context = JobContext(
            job_id=job.id,
            tenant_id=self._record.tenant_id,
            queue_name=self._record.queue_name,
            engine_queue_id=self.engine_queue_id,
            name=job.name,
            payload=job.payload,
            attempt=job.attempts_made,
            repeat_count=job.repeat_count,
        )

        logger.info(
            "Executing job",
            extra={"job_id": job.id, "job_name": job.name, "attempt": job.attempts_made},
        )

        with job_span(job.id, self.engine_queue_id, job.attempts_made) as span:
            self._current = asyncio.create_task(self._handler(context))
            try:
                result = await self._current
            except asyncio.CancelledError:
                if not self._cancelling_current:
                    raise
                result = JobResult(
                    success=False,
                    error="Cancelled: worker stopped before the job finished",
                )
            except Exception as e:
                logger.exception(
                    "Exception executing job",
                    extra={"job_id": job.id, "error": str(e)},
                )
                result = JobResult(success=False, error=f"Worker exception: {str(e)}")
            finally:
                self._current = None

            span.set_attribute("job.success", result.success)

        duration = time.monotonic() - start_time
        if result.success:
            return JobOutcome.completed(
                job_id=job.id,
                engine_queue_id=self.engine_queue_id,
                result=result.output,
                duration_seconds=duration,
            )
        return JobOutcome.failed(
            job_id=job.id,
            engine_queue_id=self.engine_queue_id,
            error=result.error or "Unknown error",
            duration_seconds=duration,
        )

    async def _consume_outcomes(self) -> None:
        """Single consumer that writes job outcomes back to the engine."""
        while True:
            outcome = await self._outcomes.get()
            if outcome is None:
                break
            try:
                await self._apply_outcome(outcome)
            except SchedulerError as e:
                logger.error(
                    "Failed to record job outcome",
                    extra={"job_id": outcome.job_id, "status": outcome.status.value, "error": str(e)},
                )

    async def _apply_outcome(self, outcome: JobOutcome) -> None:
        handle = self._record.handle
        if outcome.status == JobState.COMPLETED:
            updated = await self._engine.complete_job(handle, outcome.job_id, outcome.result)
        else:
            updated = await self._engine.fail_job(
                handle, outcome.job_id, outcome.error or "Unknown error"
            )

        if updated is None:
            logger.warning(
                "Job no longer active, outcome dropped",
                extra={"job_id": outcome.job_id, "status": outcome.status.value},
            )
            return

        self._metrics.record_job_completed(
            queue=self.engine_queue_id,
            status=outcome.status.value,
            duration_seconds=outcome.duration_seconds,
        )

        if outcome.status == JobState.COMPLETED:
            logger.info(
                "Job completed successfully",
                extra={"job_id": outcome.job_id, "duration": f"{outcome.duration_seconds:.2f}s"},
            )
        else:
            logger.warning(
                "Job failed",
                extra={"job_id": outcome.job_id, "error": outcome.error},
            )


class WorkerManager:
    """
    Keeps at most one WorkerBinding per engine queue.

    A binding whose loop crashes is dropped; the queue stays registered and
    stalls until bind() is called again.
    """

    def __init__(
        self,
        engine: QueueEngine,
        handler: JobHandler | None = None,
        poll_interval: float | None = None,
        shutdown_timeout: float | None = None,
        recovery_interval: float | None = None,
    ):
        """
        Initialize the manager.

        Args:
            engine: Queue engine the bindings poll.
            handler: Job handler; defaults to dispatch by job name.
            poll_interval: Seconds between polls when a queue is idle.
            shutdown_timeout: Seconds to wait for an in-flight job on unbind.
            recovery_interval: Seconds between stalled-job sweeps of a queue.
        """
        settings = get_settings()

        self._engine = engine
        self._handler = handler or execute_job
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds
        self.shutdown_timeout = (
            shutdown_timeout
            if shutdown_timeout is not None
            else settings.worker_shutdown_timeout_seconds
        )
        self.recovery_interval = (
            recovery_interval
            if recovery_interval is not None
            else settings.worker_recovery_interval_seconds
        )

        self._bindings: dict[str, WorkerBinding] = {}
        self._metrics = get_metrics()

    def __len__(self) -> int:
        return len(self._bindings)

    def get(self, engine_queue_id: str) -> WorkerBinding | None:
        return self._bindings.get(engine_queue_id)

    def is_bound(self, engine_queue_id: str) -> bool:
        return engine_queue_id in self._bindings

    async def bind(self, record: QueueRecord) -> WorkerBinding:
        """Start a binding for the queue, or return the existing one."""
        existing = self._bindings.get(record.engine_queue_id)
        if existing is not None:
            return existing

        binding = WorkerBinding(
            engine=self._engine,
            record=record,
            handler=self._handler,
            poll_interval=self.poll_interval,
            recovery_interval=self.recovery_interval,
            on_crash=self._binding_crashed,
        )
        self._bindings[record.engine_queue_id] = binding
        self._metrics.record_binding_started()
        await binding.start()
        return binding

    async def unbind(self, engine_queue_id: str) -> bool:
        """
        Stop and remove the binding of a queue.

        Returns:
            False if the queue had no binding.
        """
        binding = self._bindings.pop(engine_queue_id, None)
        if binding is None:
            return False
        self._metrics.record_binding_stopped()
        await binding.stop(self.shutdown_timeout)
        return True

    async def close(self) -> None:
        """Stop every binding."""
        for engine_queue_id in list(self._bindings):
            await self.unbind(engine_queue_id)

    def _binding_crashed(self, binding: WorkerBinding, exc: BaseException) -> None:
        if self._bindings.get(binding.engine_queue_id) is binding:
            del self._bindings[binding.engine_queue_id]
            self._metrics.record_binding_stopped()
            logger.error(
                "Worker binding removed after crash, queue stalls until rebound",
                extra={"queue": binding.engine_queue_id, "error": str(exc)},
            )
