"""
Cron collaborator for the queue engines.
"""

from datetime import datetime

from croniter import croniter

from tenant_scheduler.clock import ensure_utc
from tenant_scheduler.errors import InvalidScheduleError


def validate_cron(expression: str) -> None:
    """
    Check a cron expression.

    Raises:
        InvalidScheduleError: If the expression is empty or malformed.
    """
    if not expression or not expression.strip() or not croniter.is_valid(expression):
        raise InvalidScheduleError(f"Invalid cron expression: {expression!r}")


def next_fire_time(expression: str, after: datetime) -> datetime:
    """
    Next time strictly after `after` that matches the expression.

    Args:
        expression: A validated cron expression.
        after: Reference time (naive values are treated as UTC).

    Returns:
        Aware UTC datetime of the next fire time.
    """
    return ensure_utc(croniter(expression, ensure_utc(after)).get_next(datetime))
