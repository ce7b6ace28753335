"""
Health check routes.
"""

from fastapi import APIRouter
from fastapi.responses import Response

from tenant_scheduler import __version__
from tenant_scheduler.api.deps import Service
from tenant_scheduler.clock import utcnow
from tenant_scheduler.observability.metrics import get_metrics
from tenant_scheduler.types.api import HealthResponse

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Registered schedulers and running worker bindings.",
)
async def health_check(service: Service) -> HealthResponse:
    """
    Perform a health check.

    The service is degraded while some registered scheduler has no
    running worker.

    Args:
        service: Scheduler service.

    Returns:
        HealthResponse with service status.
    """
    queues = len(service.registry)
    bindings = len(service.workers)

    return HealthResponse(
        status="healthy" if bindings >= queues else "degraded",
        version=__version__,
        queues=queues,
        worker_bindings=bindings,
        timestamp=utcnow(),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(service: Service) -> dict:
    """
    Kubernetes readiness probe endpoint.

    Ready once bootstrap has rebuilt the registry.
    """
    return {"ready": service.started}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """
    Kubernetes liveness probe endpoint.

    Returns:
        Alive status.
    """
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics() -> Response:
    """
    Expose Prometheus metrics.

    Returns:
        Prometheus-formatted metrics.
    """
    metrics_collector = get_metrics()
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
