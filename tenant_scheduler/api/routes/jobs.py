"""
Job management routes.
"""

import logging

from fastapi import APIRouter, status

from tenant_scheduler.api.deps import QueueName, Service, TenantId
from tenant_scheduler.constants import API_V1_PREFIX
from tenant_scheduler.types.api import JobRequest, MessageResponse
from tenant_scheduler.types.job import JobListing, JobRecord

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix=f"{API_V1_PREFIX}/tenants/{{tenant_id}}/schedulers/{{queue_name}}/jobs",
    tags=["Jobs"],
)


@router.post(
    "",
    response_model=JobRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a job",
    description="Submit a one-time job (run_at) or a recurring job (cron, optional limit).",
)
async def create_job(
    tenant_id: TenantId,
    queue_name: QueueName,
    request: JobRequest,
    service: Service,
) -> JobRecord:
    """
    Create a new job.

    A run_at in the past schedules the job immediately.

    Args:
        tenant_id: Tenant owning the scheduler.
        queue_name: Target scheduler.
        request: Job creation request.
        service: Scheduler service.

    Returns:
        The job in its pending state.
    """
    return await service.create_job(
        tenant_id,
        queue_name,
        request.name,
        request.payload,
        request.to_schedule(),
    )


@router.get(
    "",
    response_model=JobListing,
    summary="List jobs",
    description="Jobs of the scheduler grouped by state.",
)
async def list_jobs(
    tenant_id: TenantId,
    queue_name: QueueName,
    service: Service,
) -> JobListing:
    return await service.list_jobs(tenant_id, queue_name)


@router.get(
    "/{job_id}",
    response_model=JobRecord,
    summary="Get job details",
)
async def get_job(
    tenant_id: TenantId,
    queue_name: QueueName,
    job_id: str,
    service: Service,
) -> JobRecord:
    return await service.get_job(tenant_id, queue_name, job_id)


@router.put(
    "/{job_id}",
    response_model=JobRecord,
    summary="Update a job",
    description="Replace the job's name, payload and schedule. Finished jobs are scheduled again.",
)
async def update_job(
    tenant_id: TenantId,
    queue_name: QueueName,
    job_id: str,
    request: JobRequest,
    service: Service,
) -> JobRecord:
    return await service.update_job(
        tenant_id,
        queue_name,
        job_id,
        request.name,
        request.payload,
        request.to_schedule(),
    )


@router.delete(
    "/{job_id}",
    response_model=MessageResponse,
    summary="Delete a job",
)
async def delete_job(
    tenant_id: TenantId,
    queue_name: QueueName,
    job_id: str,
    service: Service,
) -> MessageResponse:
    await service.delete_job(tenant_id, queue_name, job_id)
    return MessageResponse(message=f"Job {job_id} deleted")


@router.post(
    "/{job_id}/pause",
    response_model=JobRecord,
    summary="Pause a job",
    description="Pause a job that has not been dispatched yet.",
)
async def pause_job(
    tenant_id: TenantId,
    queue_name: QueueName,
    job_id: str,
    service: Service,
) -> JobRecord:
    return await service.pause_job(tenant_id, queue_name, job_id)


@router.post(
    "/{job_id}/resume",
    response_model=JobRecord,
    summary="Resume a job",
)
async def resume_job(
    tenant_id: TenantId,
    queue_name: QueueName,
    job_id: str,
    service: Service,
) -> JobRecord:
    return await service.resume_job(tenant_id, queue_name, job_id)
