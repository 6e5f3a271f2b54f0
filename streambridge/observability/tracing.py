"""
streambridge - OpenTelemetry Tracing

One client span per streaming session, carrying provider and outcome
attributes. Spans are exported to the console when OTEL_CONSOLE_EXPORT=true.

Usage:
    from streambridge.observability.tracing import trace_stream_session

    with trace_stream_session("anthropic", session_id) as span:
        ...
        span.set_attribute("stream.outcome", "ended")
"""

import os
from contextlib import contextmanager
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.trace import SpanKind, Status, StatusCode


class TracingManager:
    """
    Central tracing manager using OpenTelemetry.

    Singleton pattern for global access.
    """

    _instance: Optional["TracingManager"] = None

    def __init__(
        self,
        service_name: str = "streambridge",
        service_version: str = "0.1.0",
        console_export: bool = False,
    ):
        self.service_name = service_name
        self.service_version = service_version

        resource = Resource.create({
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
        })
        self.provider = TracerProvider(resource=resource)

        if console_export:
            self.provider.add_span_processor(
                SimpleSpanProcessor(ConsoleSpanExporter())
            )

        self.tracer = self.provider.get_tracer(service_name, service_version)

    @classmethod
    def get_instance(cls) -> "TracingManager":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls(
                console_export=os.getenv("OTEL_CONSOLE_EXPORT", "").lower() == "true"
            )
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton (for testing)."""
        cls._instance = None

    def start_client_span(
        self,
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
    ):
        """Start a client span for outgoing requests."""
        return self.tracer.start_as_current_span(
            name,
            kind=SpanKind.CLIENT,
            attributes=attributes,
        )

    def shutdown(self):
        """Shutdown the tracer provider."""
        self.provider.shutdown()


def setup_tracing(
    service_name: str = "streambridge",
    service_version: str = "0.1.0",
    console_export: bool = False,
) -> TracingManager:
    """
    Setup tracing and register it as the global tracer provider.

    Call once at application startup.
    """
    if os.getenv("OTEL_CONSOLE_EXPORT", "").lower() == "true":
        console_export = True

    manager = TracingManager(
        service_name=service_name,
        service_version=service_version,
        console_export=console_export,
    )
    TracingManager._instance = manager
    trace.set_tracer_provider(manager.provider)
    return manager


def get_tracing_manager() -> TracingManager:
    """Get the tracing manager instance."""
    return TracingManager.get_instance()


def mark_span_error(span, exception: BaseException) -> None:
    """Record an exception on a span and flag it as failed."""
    span.record_exception(exception)
    span.set_status(Status(StatusCode.ERROR, str(exception)))


@contextmanager
def trace_stream_session(provider: str, session_id: str):
    """
    Context manager for tracing one streaming session.

    Usage:
        with trace_stream_session("openai", "sess_123") as span:
            ...
    """
    tracing = get_tracing_manager()

    with tracing.start_client_span(
        name=f"{provider}.stream",
        attributes={
            "ai.provider": provider,
            "stream.session_id": session_id,
        },
    ) as span:
        yield span
