"""
streambridge - Prometheus Metrics

Metrics exposed:
- streambridge_sessions_total: Counter of finished sessions by provider and outcome
- streambridge_session_duration_seconds: Histogram of session duration
- streambridge_time_to_first_token_seconds: Histogram of time to first text delta
- streambridge_events_emitted_total: Counter of normalized events by kind
- streambridge_decode_failures_total: Counter of recoverable decode failures
- streambridge_upstream_bytes_total: Counter of bytes read from upstream bodies
- streambridge_active_sessions: Gauge of sessions currently streaming

Usage:
    from streambridge.observability.metrics import get_metrics, metrics_endpoint

    metrics = get_metrics()
    metrics.record_session(provider="openai", outcome="ended", duration_seconds=1.5)

    @app.get("/metrics")
    async def metrics():
        return metrics_endpoint()
"""

from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
)
from fastapi import Response


class StreamMetrics:
    """
    Collectors for streaming sessions.

    Pass a fresh CollectorRegistry to get an isolated instance (tests);
    the process-wide instance lives on the default registry.
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry

        self.sessions_total = Counter(
            "streambridge_sessions_total",
            "Total number of finished streaming sessions",
            labelnames=["provider", "outcome"],  # outcome = ended/errored/cancelled
            registry=registry,
        )

        # Chat streams range from well under a second to several minutes
        self.session_duration = Histogram(
            "streambridge_session_duration_seconds",
            "Streaming session duration in seconds",
            labelnames=["provider", "outcome"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, float("inf")),
            registry=registry,
        )

        self.time_to_first_token = Histogram(
            "streambridge_time_to_first_token_seconds",
            "Time from request dispatch to the first text delta",
            labelnames=["provider"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, float("inf")),
            registry=registry,
        )

        self.events_emitted = Counter(
            "streambridge_events_emitted_total",
            "Normalized events delivered to consumers",
            labelnames=["provider", "kind"],
            registry=registry,
        )

        self.decode_failures = Counter(
            "streambridge_decode_failures_total",
            "Recoverable decode failures",
            labelnames=["provider", "code"],
            registry=registry,
        )

        self.upstream_bytes = Counter(
            "streambridge_upstream_bytes_total",
            "Bytes read from upstream response bodies",
            labelnames=["provider"],
            registry=registry,
        )

        self.active_sessions = Gauge(
            "streambridge_active_sessions",
            "Number of sessions currently streaming",
            labelnames=["provider"],
            registry=registry,
        )

    def record_session(self, provider: str, outcome: str, duration_seconds: float):
        """Record a finished session."""
        self.sessions_total.labels(provider=provider, outcome=outcome).inc()
        self.session_duration.labels(provider=provider, outcome=outcome).observe(duration_seconds)

    def record_event(self, provider: str, kind: str):
        self.events_emitted.labels(provider=provider, kind=kind).inc()

    def record_decode_failure(self, provider: str, code: str):
        self.decode_failures.labels(provider=provider, code=code).inc()

    def record_bytes(self, provider: str, size: int):
        self.upstream_bytes.labels(provider=provider).inc(size)

    def record_time_to_first_token(self, provider: str, ttft_seconds: float):
        self.time_to_first_token.labels(provider=provider).observe(ttft_seconds)

    def track_active_session(self, provider: str) -> "ActiveSessionTracker":
        """Context manager to track active sessions."""
        return ActiveSessionTracker(self, provider)


class ActiveSessionTracker:
    """Context manager for tracking active sessions."""

    def __init__(self, collector: StreamMetrics, provider: str):
        self.collector = collector
        self.provider = provider

    def __enter__(self):
        self.collector.active_sessions.labels(provider=self.provider).inc()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.collector.active_sessions.labels(provider=self.provider).dec()


# Module-level functions for convenience
_metrics_instance: Optional[StreamMetrics] = None


def get_metrics() -> StreamMetrics:
    """Get the process-wide metrics instance, creating it on first use."""
    global _metrics_instance
    if _metrics_instance is None:
        _metrics_instance = StreamMetrics(REGISTRY)
    return _metrics_instance


def metrics_endpoint(registry: CollectorRegistry = REGISTRY) -> Response:
    """
    Generate Prometheus metrics endpoint response.

    Usage:
        @app.get("/metrics")
        async def metrics():
            return metrics_endpoint()
    """
    content = generate_latest(registry)
    return Response(
        content=content,
        media_type=CONTENT_TYPE_LATEST,
    )
