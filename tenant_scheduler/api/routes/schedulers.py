"""
Scheduler management routes.
"""

from fastapi import APIRouter, status

from tenant_scheduler.api.deps import QueueName, Service, TenantId, scheduler_response
from tenant_scheduler.constants import API_V1_PREFIX
from tenant_scheduler.types.api import (
    CreateSchedulerRequest,
    MessageResponse,
    RenameSchedulerRequest,
    SchedulerResponse,
)

router = APIRouter(prefix=f"{API_V1_PREFIX}/tenants/{{tenant_id}}/schedulers", tags=["Schedulers"])


@router.post(
    "",
    response_model=SchedulerResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a scheduler",
    description="Register a new named queue for the tenant and bind a worker to it.",
)
async def create_scheduler(
    tenant_id: TenantId,
    request: CreateSchedulerRequest,
    service: Service,
) -> SchedulerResponse:
    record = await service.create_scheduler(tenant_id, request.queue_name)
    return scheduler_response(record)


@router.get(
    "",
    response_model=list[str],
    summary="List schedulers",
    description="Names of the tenant's schedulers, sorted.",
)
async def list_schedulers(tenant_id: TenantId, service: Service) -> list[str]:
    return service.list_schedulers(tenant_id)


@router.get(
    "/{queue_name}",
    response_model=SchedulerResponse,
    summary="Get scheduler details",
)
async def get_scheduler(
    tenant_id: TenantId,
    queue_name: QueueName,
    service: Service,
) -> SchedulerResponse:
    return scheduler_response(service.get_scheduler(tenant_id, queue_name))


@router.put(
    "/{queue_name}",
    response_model=SchedulerResponse,
    summary="Rename a scheduler",
    description="Move the scheduler to a new name. Existing jobs stay with the old queue.",
)
async def rename_scheduler(
    tenant_id: TenantId,
    queue_name: QueueName,
    request: RenameSchedulerRequest,
    service: Service,
) -> SchedulerResponse:
    record = await service.rename_scheduler(tenant_id, queue_name, request.new_queue_name)
    return scheduler_response(record)


@router.delete(
    "/{queue_name}",
    response_model=MessageResponse,
    summary="Delete a scheduler",
    description="Stop the scheduler's worker and remove the scheduler with all of its jobs.",
)
async def delete_scheduler(
    tenant_id: TenantId,
    queue_name: QueueName,
    service: Service,
) -> MessageResponse:
    await service.delete_scheduler(tenant_id, queue_name)
    return MessageResponse(message=f"Scheduler {queue_name} deleted")


@router.post(
    "/{queue_name}/pause",
    response_model=SchedulerResponse,
    summary="Pause a scheduler",
)
async def pause_scheduler(
    tenant_id: TenantId,
    queue_name: QueueName,
    service: Service,
) -> SchedulerResponse:
    return scheduler_response(await service.pause_scheduler(tenant_id, queue_name))


@router.post(
    "/{queue_name}/resume",
    response_model=SchedulerResponse,
    summary="Resume a scheduler",
)
async def resume_scheduler(
    tenant_id: TenantId,
    queue_name: QueueName,
    service: Service,
) -> SchedulerResponse:
    return scheduler_response(await service.resume_scheduler(tenant_id, queue_name))


@router.post(
    "/{queue_name}/rebind",
    response_model=SchedulerResponse,
    summary="Rebind a scheduler's worker",
    description="Attach a worker to a scheduler whose worker stopped unexpectedly.",
)
async def rebind_scheduler(
    tenant_id: TenantId,
    queue_name: QueueName,
    service: Service,
) -> SchedulerResponse:
    return scheduler_response(await service.rebind_scheduler(tenant_id, queue_name))
