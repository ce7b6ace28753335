"""
Shared route dependencies.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Path, Request, status

from tenant_scheduler.registry import QueueRecord
from tenant_scheduler.service import SchedulerService
from tenant_scheduler.types.api import NAME_PATTERN, SchedulerResponse


def get_service(request: Request) -> SchedulerService:
    """
    Scheduler service attached to the application.

    Raises:
        HTTPException: 503 before the lifespan has built the service.
    """
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduler service is not running",
        )
    return service


Service = Annotated[SchedulerService, Depends(get_service)]
TenantId = Annotated[str, Path(pattern=NAME_PATTERN, description="Tenant identifier")]
QueueName = Annotated[str, Path(pattern=NAME_PATTERN, description="Scheduler name")]


def scheduler_response(record: QueueRecord) -> SchedulerResponse:
    """Convert a registry record to a SchedulerResponse."""
    return SchedulerResponse(
        tenant_id=record.tenant_id,
        queue_name=record.queue_name,
        engine_queue_id=record.engine_queue_id,
        state=record.state,
        created_at=record.created_at,
    )
