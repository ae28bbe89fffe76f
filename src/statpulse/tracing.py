# src/statpulse/tracing.py

import os

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    SimpleSpanProcessor,
    ConsoleSpanExporter,
)


def configure_tracing(service_name: str = "statpulse") -> None:
    """
    Configure OpenTelemetry tracing.

    A provider is always installed so log records carry real trace ids.
    Spans are only printed when STATPULSE_TRACE_CONSOLE=true, since the
    cron output is also the job log.
    """
    if isinstance(trace.get_tracer_provider(), TracerProvider):
        return

    from opentelemetry.sdk.resources import Resource

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if os.getenv("STATPULSE_TRACE_CONSOLE", "false").lower() == "true":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
