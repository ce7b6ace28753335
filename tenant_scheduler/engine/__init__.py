"""
Queue engine module.
Contract consumed by the scheduler core and its implementations.
"""

from tenant_scheduler.engine.base import QueueEngine, QueueHandle
from tenant_scheduler.engine.cron import next_fire_time, validate_cron
from tenant_scheduler.engine.memory import MemoryQueueEngine
from tenant_scheduler.engine.sql import SqlQueueEngine

__all__ = [
    "QueueEngine",
    "QueueHandle",
    "MemoryQueueEngine",
    "SqlQueueEngine",
    "next_fire_time",
    "validate_cron",
]
