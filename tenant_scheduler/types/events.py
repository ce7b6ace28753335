"""
Outcome messages sent from worker loops to the per-queue outcome handler.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from tenant_scheduler.clock import utcnow
from tenant_scheduler.constants import JobState


class JobOutcome(BaseModel):
    """
    Result of one job execution, routed through a binding's outcome channel.
    """

    job_id: str
    engine_queue_id: str
    status: JobState
    timestamp: datetime
    duration_seconds: float = 0.0
    result: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def completed(
        cls,
        job_id: str,
        engine_queue_id: str,
        result: dict[str, Any] | None = None,
        duration_seconds: float = 0.0,
    ) -> "JobOutcome":
        """Create a job completed outcome."""
        return cls(
            job_id=job_id,
            engine_queue_id=engine_queue_id,
            status=JobState.COMPLETED,
            timestamp=utcnow(),
            duration_seconds=duration_seconds,
            result=result,
        )

    @classmethod
    def failed(
        cls,
        job_id: str,
        engine_queue_id: str,
        error: str,
        duration_seconds: float = 0.0,
    ) -> "JobOutcome":
        """Create a job failed outcome."""
        return cls(
            job_id=job_id,
            engine_queue_id=engine_queue_id,
            status=JobState.FAILED,
            timestamp=utcnow(),
            duration_seconds=duration_seconds,
            error=error,
        )
