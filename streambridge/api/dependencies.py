"""
streambridge - API Dependencies

Shared dependencies for FastAPI routes. Runtime objects are created by
the server lifespan and stored on app.state.
"""

import uuid
from typing import Any, Dict

import httpx
from fastapi import Request

from ..core.config import Settings
from ..core.errors import ConfigurationError, InvalidRequestError
from ..observability.metrics import StreamMetrics


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Shared upstream client; only available while the app is running."""
    client = getattr(request.app.state, "http_client", None)
    if client is None:
        raise ConfigurationError(
            "HTTP client not initialized. Server may be starting up.",
            code="service_unavailable",
            status_code=503,
        )
    return client


def get_stream_metrics(request: Request) -> StreamMetrics:
    return request.app.state.metrics


def get_request_id(request: Request) -> str:
    """Use the caller's X-Request-Id when present."""
    return request.headers.get("X-Request-Id") or f"req_{uuid.uuid4().hex[:24]}"


async def read_json_body(request: Request) -> Dict[str, Any]:
    """
    Parse the request body as a JSON object.

    Raises:
        InvalidRequestError: If the body is not a JSON object
    """
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidRequestError(f"Request body is not valid JSON: {e}")
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return body
