"""
streambridge - Stream API

Streams a provider completion to an HTTP client as AI SDK data stream
lines. The request body is the provider-native JSON request.

Credential and provider problems are answered with a JSON error before
streaming starts. Failures after that point arrive in-stream as `3:`
error lines, because the status line has already been sent.
"""

import asyncio
from typing import AsyncIterator

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ..core.config import Settings
from ..core.errors import BridgeException
from ..observability.logging import LogContext, get_logger
from ..observability.metrics import StreamMetrics
from ..providers import ProviderAdapter, get_provider
from ..streaming.emitter import QueueSink
from .dependencies import (
    get_http_client,
    get_request_id,
    get_settings,
    get_stream_metrics,
    read_json_body,
)


logger = get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["stream"])

DATA_STREAM_HEADER = "x-vercel-ai-data-stream"


# ============================================================
# Stream Endpoint
# ============================================================

@router.post("/stream/{provider}")
async def stream_completion(
    provider: str,
    request: Request,
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
    metrics: StreamMetrics = Depends(get_stream_metrics),
    request_id: str = Depends(get_request_id),
):
    """
    Stream a completion from `provider` ("anthropic" or "openai").

    **Response:** `text/plain` lines
    - `f:{...}` stream start metadata
    - `0:"..."` text deltas
    - `d:{...}` finish reason and usage
    - `3:"..."` errors

    Closing the connection cancels the upstream request.
    """
    adapter = get_provider(provider, settings, client, metrics)
    body = await read_json_body(request)
    sink = QueueSink(maxsize=settings.sink_queue_size)

    return StreamingResponse(
        _generate(adapter, body, sink, request_id),
        media_type="text/plain; charset=utf-8",
        headers={
            DATA_STREAM_HEADER: "v1",
            "Cache-Control": "no-cache",
            "X-Request-Id": request_id,
        },
    )


async def _run_session(
    adapter: ProviderAdapter,
    body: dict,
    sink: QueueSink,
    request_id: str,
) -> None:
    # runs in its own task, so the context does not leak back to the caller
    LogContext.set_current(LogContext(request_id=request_id, provider=adapter.provider.value))
    try:
        await adapter.stream(body, sink)
    except BridgeException as e:
        # already delivered to the client as an error line
        logger.info("Stream closed after fatal error", code=e.error.code)
    except Exception:
        logger.exception("Unexpected stream failure")
        raise
    finally:
        sink.finish()


async def _generate(
    adapter: ProviderAdapter,
    body: dict,
    sink: QueueSink,
    request_id: str,
) -> AsyncIterator[str]:
    task = asyncio.create_task(_run_session(adapter, body, sink, request_id))
    drained = False
    try:
        async for record in sink.records():
            line = record.to_wire()
            if line:
                yield line
        drained = True
    finally:
        sink.close()
        if not drained and not task.done():
            logger.info("Client disconnected, cancelling stream")
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)
