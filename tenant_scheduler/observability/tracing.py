"""
OpenTelemetry tracing setup.

Spans are opened around job execution and bootstrap; the HTTP adapter and
the SQL backends are instrumented automatically.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Tracer

from tenant_scheduler import __version__
from tenant_scheduler.config import get_settings
from tenant_scheduler.constants import SPAN_EXECUTE_JOB

logger = logging.getLogger(__name__)

# Set once setup_tracing() has installed the SDK provider
_tracer: Tracer | None = None


def setup_tracing(enable_console_export: bool = False) -> Tracer:
    """
    Install the SDK tracer provider with an OTLP exporter.

    Calling it again returns the tracer built the first time.

    Args:
        enable_console_export: Also print finished spans to stdout.
    """
    global _tracer
    if _tracer is not None:
        return _tracer

    settings = get_settings()
    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.otel_service_name,
                "service.version": __version__,
            }
        )
    )

    try:
        exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint, insecure=True)
        provider.add_span_processor(BatchSpanProcessor(exporter))
    except Exception as e:
        logger.warning("OTLP exporter not available, spans are not exported", extra={"error": str(e)})

    if enable_console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(settings.otel_service_name)
    logger.info("Tracing configured", extra={"endpoint": settings.otel_exporter_otlp_endpoint})
    return _tracer


def get_tracer() -> Tracer:
    """
    Tracer for library code.

    Before setup_tracing() runs this is the global no-op tracer, so spans
    can always be opened.
    """
    if _tracer is None:
        return trace.get_tracer(get_settings().otel_service_name)
    return _tracer


@contextmanager
def job_span(job_id: str, engine_queue_id: str, attempt: int) -> Iterator[Span]:
    """Span around one execution of a job."""
    with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
        span.set_attribute("job.id", job_id)
        span.set_attribute("job.queue", engine_queue_id)
        span.set_attribute("job.attempt", attempt)
        yield span


def instrument_fastapi(app: Any) -> None:
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine: Any) -> None:
    """Instrument a SQLAlchemy engine (pass the sync_engine of an async one)."""
    SQLAlchemyInstrumentor().instrument(engine=engine)
