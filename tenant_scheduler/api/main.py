"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tenant_scheduler import __version__
from tenant_scheduler.api.routes import health_router, jobs_router, schedulers_router
from tenant_scheduler.config import get_settings
from tenant_scheduler.db import close_db, init_db
from tenant_scheduler.errors import (
    AlreadyExistsError,
    EngineInconsistentError,
    EngineUnavailableError,
    InvalidScheduleError,
    NotFoundError,
    SchedulerError,
)
from tenant_scheduler.observability.logging import setup_logging
from tenant_scheduler.observability.metrics import setup_metrics
from tenant_scheduler.observability.tracing import instrument_fastapi, setup_tracing
from tenant_scheduler.service import SchedulerService
from tenant_scheduler.types.api import ErrorResponse

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[SchedulerError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    AlreadyExistsError: status.HTTP_409_CONFLICT,
    InvalidScheduleError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    EngineUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    EngineInconsistentError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the scheduler service unless one was injected, rebuilds the
    registry from the catalog and tears everything down on shutdown.
    """
    # Startup
    setup_logging()
    setup_metrics()
    setup_tracing()

    service: SchedulerService | None = getattr(app.state, "service", None)
    if service is None:
        settings = get_settings()
        session_factory = None
        if "sql" in (settings.catalog_backend, settings.engine_backend):
            session_factory = await init_db()
        service = SchedulerService.from_settings(settings, session_factory)
        app.state.service = service

    report = await service.start()
    logger.info(
        "Application started",
        extra={"restored": len(report.restored), "failed": len(report.failed)},
    )

    yield

    # Shutdown
    await service.shutdown()
    await close_db()
    logger.info("Application shutdown")


async def scheduler_error_handler(request: Request, exc: SchedulerError) -> JSONResponse:
    """Render a SchedulerError as an ErrorResponse."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status_code = code
            break

    if status_code >= 500:
        logger.error(
            "Request failed",
            extra={"path": request.url.path, "error": exc.code, "detail": exc.message},
        )

    body = ErrorResponse(error=exc.code, detail=exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app(service: SchedulerService | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Pre-built scheduler service. When omitted the lifespan
            builds one from the settings.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Tenant Scheduler API",
        description="Multi-tenant named job queues with one-time and cron jobs",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.service = service

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SchedulerError, scheduler_error_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(schedulers_router)
    app.include_router(jobs_router)

    # Instrument with OpenTelemetry
    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    app = create_app()

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    run()
