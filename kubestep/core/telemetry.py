from typing import Dict, Optional
import functools
import logging
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from kubestep.core.config import settings

# Configure logging at module level
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


# Global flag to ensure initialization only happens once
_initialized = False
tracer = None


def _initialize_telemetry():
    """Initialize telemetry once and only once."""
    global _initialized, tracer

    if _initialized:
        return

    resource = Resource(attributes={SERVICE_NAME: settings.otel_service_name})
    provider = TracerProvider(resource=resource)

    # Spans are only exported when an OTLP endpoint is configured
    if settings.otel_exporter_endpoint:
        headers: Dict[str, str] = {}
        if settings.otel_exporter_token:
            headers["Authorization"] = f"Bearer {settings.otel_exporter_token}"
        exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_endpoint, headers=headers
        )
        provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    tracer = trace.get_tracer(settings.otel_service_name)

    logging.getLogger().setLevel(settings.log_level)

    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance. Ensures telemetry is initialized.
    Use this instead of logging.getLogger() directly.
    """
    if not _initialized:
        _initialize_telemetry()
    return logging.getLogger(name)


def trace_span(func):
    """Decorator that automatically creates a span with the function name."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        if not _initialized:
            _initialize_telemetry()

        span_name = func.__name__
        if args and hasattr(args[0], "__class__"):
            # If it's a method, include class name
            span_name = f"{args[0].__class__.__name__}.{func.__name__}"

        with tracer.start_as_current_span(span_name):
            return func(*args, **kwargs)

    return wrapper


def log_span_event(message: str, attributes: Optional[Dict[str, str]] = None):
    """
    Record a message as an event on the current span and log it.
    """
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        current_span.add_event(message, attributes=attributes or {})

    get_logger(__name__).info(message)
