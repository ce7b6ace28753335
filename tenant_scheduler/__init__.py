"""
Tenant Scheduler

Multi-tenant job scheduling core: per-tenant named queues, delayed and
cron-recurring jobs, one worker per queue, and catalog-driven recovery
after restart.
"""

__version__ = "1.0.0"
