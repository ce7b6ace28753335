"""
API routes module.
"""

from tenant_scheduler.api.routes.health import router as health_router
from tenant_scheduler.api.routes.jobs import router as jobs_router
from tenant_scheduler.api.routes.schedulers import router as schedulers_router

__all__ = ["schedulers_router", "jobs_router", "health_router"]
