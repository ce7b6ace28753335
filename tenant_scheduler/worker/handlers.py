"""
Job handlers, looked up by job name.

A job is delivered at least once: a job leased just before a crash is
dispatched again once its lease expires, so handlers must tolerate
running twice.
"""

import logging
from collections.abc import Awaitable, Callable

import httpx

from tenant_scheduler.config import get_settings
from tenant_scheduler.types.job import JobContext, JobResult

logger = logging.getLogger(__name__)

JobHandler = Callable[[JobContext], Awaitable[JobResult]]

_handlers: dict[str, JobHandler] = {}


def register_handler(job_name: str) -> Callable[[JobHandler], JobHandler]:
    """
    Register the decorated coroutine as the handler for job_name.

    Registering a name twice replaces the earlier handler.

    Example:
        @register_handler("send_report")
        async def handle_send_report(context: JobContext) -> JobResult:
            ...
    """
    def decorator(handler: JobHandler) -> JobHandler:
        if job_name in _handlers:
            logger.warning("Replacing job handler", extra={"job_name": job_name})
        _handlers[job_name] = handler
        logger.debug("Registered job handler", extra={"job_name": job_name})
        return handler
    return decorator


def get_handler(job_name: str) -> JobHandler | None:
    return _handlers.get(job_name)


def list_handlers() -> list[str]:
    return sorted(_handlers)


# Built-in handlers


@register_handler("echo")
async def handle_echo(context: JobContext) -> JobResult:
    """Return the payload unchanged."""
    logger.info(
        "Echo job executing",
        extra={"job_id": context.job_id, "queue": context.engine_queue_id}
    )

    return JobResult(
        success=True,
        output={"echo": context.payload},
    )


@register_handler("webhook")
async def handle_webhook(context: JobContext) -> JobResult:
    """
    Deliver the job to an HTTP endpoint.

    Payload should contain:
    - url: The URL to call
    - method: HTTP method (default POST)
    - headers: Optional headers
    - body: Optional JSON body; defaults to the job identity and payload
    """
    url = context.payload.get("url")
    method = context.payload.get("method", "POST").upper()
    headers = context.payload.get("headers", {})
    body = context.payload.get(
        "body",
        {"job_id": context.job_id, "name": context.name, "data": context.payload},
    )

    if not url:
        return JobResult(
            success=False,
            error="Missing 'url' in payload",
        )

    logger.info(
        "Webhook job",
        extra={"job_id": context.job_id, "method": method, "url": url}
    )

    try:
        async with httpx.AsyncClient() as client:
            response = await client.request(
                method=method,
                url=url,
                headers=headers,
                json=body if method in ["POST", "PUT", "PATCH"] else None,
                timeout=get_settings().webhook_timeout_seconds,
            )

            return JobResult(
                success=response.is_success,
                output={
                    "status_code": response.status_code,
                    "body": response.text[:1000],  # Truncate response
                },
                error=None if response.is_success else f"HTTP {response.status_code}",
            )

    except httpx.HTTPError as e:
        return JobResult(
            success=False,
            error=f"Webhook request failed: {str(e)}",
        )


async def execute_job(context: JobContext) -> JobResult:
    """
    Default worker handler: run the handler registered for the job name.

    A missing handler or a raising handler becomes a failed result rather
    than an exception, so the worker loop always gets an outcome.
    """
    handler = get_handler(context.name)

    if handler is None:
        logger.error(
            "No handler for job name",
            extra={"job_id": context.job_id, "job_name": context.name}
        )
        return JobResult(
            success=False,
            error=f"No handler registered for job name: {context.name}",
        )

    try:
        return await handler(context)
    except Exception as e:
        logger.exception(
            "Handler raised exception",
            extra={"job_id": context.job_id, "error": str(e)}
        )
        return JobResult(
            success=False,
            error=f"Handler exception: {str(e)}",
        )
