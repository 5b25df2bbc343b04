"""
OpenTelemetry tracing setup.
"""

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Tracer

from kue import __version__
from kue.config import get_settings

# Global tracer instance
_tracer: Tracer | None = None


def setup_tracing(enable_console_export: bool = False) -> Tracer:
    """
    Set up OpenTelemetry tracing.

    Args:
        enable_console_export: If True, also export spans to console.

    Returns:
        Tracer: The tracer instance.
    """
    global _tracer

    settings = get_settings()

    resource = Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": __version__,
        }
    )

    provider = TracerProvider(resource=resource)

    otlp_exporter = OTLPSpanExporter(
        endpoint=settings.otel_exporter_otlp_endpoint,
        insecure=True,
    )
    provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    if enable_console_export:
        provider.add_span_processor(
            BatchSpanProcessor(ConsoleSpanExporter())
        )

    trace.set_tracer_provider(provider)

    _tracer = trace.get_tracer(settings.otel_service_name)

    return _tracer


def get_tracer() -> Tracer:
    """
    Get the tracer instance.

    Falls back to the global provider's tracer (a no-op one unless a
    provider was installed) when `setup_tracing` has not run.

    Returns:
        Tracer: The tracer instance.
    """
    if _tracer is None:
        return trace.get_tracer("kue")
    return _tracer


def create_span(name: str, **attributes: Any) -> Any:
    """
    Start a span as the current span, with string attributes.

    Args:
        name: Span name.
        **attributes: Span attributes. None values are skipped.

    Returns:
        A context manager for the span.
    """
    attrs = {key: str(value) for key, value in attributes.items() if value is not None}
    return get_tracer().start_as_current_span(name, attributes=attrs)
