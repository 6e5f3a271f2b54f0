"""
streambridge - Main API Server

FastAPI application exposing streaming translation sessions over HTTP.

Features:
- POST /v1/stream/{provider}: provider SSE translated to data stream lines
- Anthropic and OpenAI upstreams
- Shared upstream connection pool with configured timeouts
- Observability (structured logs, Prometheus metrics, OpenTelemetry spans)
"""

import uuid
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .core.config import Settings
from .core.errors import BridgeException
from .observability import (
    get_logger,
    get_metrics,
    metrics_endpoint,
    setup_logging,
    setup_tracing,
)
from .observability.metrics import StreamMetrics
from .api import stream_router


VERSION = "0.1.0"


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
    metrics: Optional[StreamMetrics] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Runtime settings (defaults to Settings.from_env())
        client: Upstream HTTP client; created by the lifespan when omitted
            and then owned and closed by the app
        metrics: Metrics collectors (defaults to the global registry)
    """
    settings = settings or Settings.from_env()
    metrics = metrics or get_metrics()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(level=settings.log_level, json_output=settings.log_format == "json")
        tracing = setup_tracing(service_version=VERSION)
        logger = get_logger("server")

        owns_client = app.state.http_client is None
        if owns_client:
            app.state.http_client = httpx.AsyncClient(timeout=settings.timeout())

        providers = [p.value for p in settings.configured_providers()]
        if not providers:
            logger.warning("No providers configured. Set ANTHROPIC_API_KEY or OPENAI_API_KEY")
        logger.info("streambridge server ready", providers=providers)

        yield

        if owns_client:
            await app.state.http_client.aclose()
            app.state.http_client = None
        tracing.shutdown()
        logger.info("streambridge server stopped")

    app = FastAPI(
        title="streambridge",
        description="Streaming translation of provider SSE into a normalized data stream",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.http_client = client

    app.include_router(stream_router)

    # ============================================================
    # Core Endpoints
    # ============================================================

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        providers = [p.value for p in settings.configured_providers()]
        return {
            "status": "healthy" if providers else "degraded",
            "version": VERSION,
            "providers": providers,
        }

    @app.get("/metrics")
    async def prometheus_metrics():
        """Prometheus metrics endpoint."""
        return metrics_endpoint(metrics.registry)

    # ============================================================
    # Error handlers
    # ============================================================

    @app.exception_handler(BridgeException)
    async def bridge_exception_handler(request: Request, exc: BridgeException):
        """Handle errors raised before a stream starts."""
        request_id = request.headers.get("X-Request-Id") or f"req_{uuid.uuid4().hex[:24]}"
        headers = {
            "X-Request-Id": request_id,
            "X-Error-Type": exc.error.type.value,
            "X-Error-Code": exc.error.code,
        }
        if exc.error.provider:
            headers["X-Provider"] = exc.error.provider

        return JSONResponse(
            status_code=exc.status_code,
            content=exc.error.to_dict(),
            headers=headers,
        )

    return app


# ============================================================
# Run server
# ============================================================

if __name__ == "__main__":
    import uvicorn

    server_settings = Settings.from_env()
    uvicorn.run(
        create_app(server_settings),
        host=server_settings.host,
        port=server_settings.port,
    )
