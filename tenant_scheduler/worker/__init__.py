"""
Worker module.
Per-queue execution loops and job handlers.
"""

from tenant_scheduler.worker.handlers import (
    execute_job,
    get_handler,
    list_handlers,
    register_handler,
)
from tenant_scheduler.worker.manager import WorkerBinding, WorkerManager

__all__ = [
    "WorkerBinding",
    "WorkerManager",
    "execute_job",
    "get_handler",
    "list_handlers",
    "register_handler",
]
