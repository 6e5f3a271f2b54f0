"""
streambridge - Pytest Configuration

Configures:
- Isolated metrics registries
- Recording consumer sinks
- Fake upstream SSE bodies served through httpx.MockTransport
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx
import pytest
from prometheus_client import CollectorRegistry

from streambridge.observability.metrics import StreamMetrics
from streambridge.streaming.emitter import Channel, DownstreamRecord


# ============================================================
# SSE Helpers
# ============================================================

def sse(payload: Any, event: Optional[str] = None) -> str:
    """Render one SSE block; dict payloads are JSON encoded."""
    data = payload if isinstance(payload, str) else json.dumps(payload)
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {data}\n\n"


def split_every(data: bytes, size: int) -> List[bytes]:
    """Split bytes into fixed-size chunks."""
    return [data[i:i + size] for i in range(0, len(data), size)]


ANTHROPIC_EVENTS = [
    ("message_start", {
        "type": "message_start",
        "message": {
            "id": "msg_01",
            "model": "claude-3-5-sonnet-20241022",
            "role": "assistant",
            "usage": {"input_tokens": 12, "output_tokens": 1},
        },
    }),
    ("content_block_start", {
        "type": "content_block_start",
        "index": 0,
        "content_block": {"type": "text", "text": ""},
    }),
    ("ping", {"type": "ping"}),
    ("content_block_delta", {
        "type": "content_block_delta",
        "index": 0,
        "delta": {"type": "text_delta", "text": "Hello"},
    }),
    ("content_block_delta", {
        "type": "content_block_delta",
        "index": 0,
        "delta": {"type": "text_delta", "text": " world"},
    }),
    ("content_block_stop", {"type": "content_block_stop", "index": 0}),
    ("message_delta", {
        "type": "message_delta",
        "delta": {"stop_reason": "end_turn"},
        "usage": {"output_tokens": 7},
    }),
    ("message_stop", {"type": "message_stop"}),
]

OPENAI_CHUNKS = [
    {"id": "chatcmpl-1", "choices": [{"index": 0, "delta": {"role": "assistant"}}]},
    {"id": "chatcmpl-1", "choices": [{"index": 0, "delta": {"content": "Hi"}}]},
    {"id": "chatcmpl-1", "choices": [{"index": 0, "delta": {"content": " there"}}]},
    {"id": "chatcmpl-1", "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]},
]


def anthropic_body() -> bytes:
    return "".join(sse(payload, event) for event, payload in ANTHROPIC_EVENTS).encode()


def openai_body() -> bytes:
    return ("".join(sse(chunk) for chunk in OPENAI_CHUNKS) + sse("[DONE]")).encode()


# ============================================================
# Fake Upstream
# ============================================================

class ChunkedStream(httpx.AsyncByteStream):
    """
    Response body delivered in the given chunks.

    Optionally raises after the last chunk, or blocks until `release` is set.
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        fail_with: Optional[Exception] = None,
        release: Optional[asyncio.Event] = None,
    ):
        self.chunks = list(chunks)
        self.fail_with = fail_with
        self.release = release
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.release is not None:
            await self.release.wait()
        if self.fail_with is not None:
            raise self.fail_with

    async def aclose(self):
        self.closed = True


class FakeUpstream:
    """
    MockTransport handler serving one canned response per request.

    Records every request it receives.
    """

    def __init__(
        self,
        chunks: Iterable[bytes] = (),
        status_code: int = 200,
        fail_with: Optional[Exception] = None,
        connect_error: Optional[Exception] = None,
        release: Optional[asyncio.Event] = None,
        error_body: Optional[Dict[str, Any]] = None,
    ):
        self.chunks = list(chunks)
        self.status_code = status_code
        self.fail_with = fail_with
        self.connect_error = connect_error
        self.release = release
        self.error_body = error_body
        self.requests: List[httpx.Request] = []
        self.streams: List[ChunkedStream] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.connect_error is not None:
            raise self.connect_error
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json=self.error_body or {"error": "bad"})
        stream = ChunkedStream(self.chunks, self.fail_with, self.release)
        self.streams.append(stream)
        return httpx.Response(
            self.status_code,
            headers={"content-type": "text/event-stream"},
            stream=stream,
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    @property
    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)


# ============================================================
# Sinks
# ============================================================

class RecordingSink:
    """Collects records; optionally fails from the Nth send on."""

    def __init__(self, fail_from: Optional[int] = None, on_send: Optional[Callable] = None):
        self.records: List[DownstreamRecord] = []
        self.fail_from = fail_from
        self.on_send = on_send
        self.attempts = 0

    async def send(self, record: DownstreamRecord) -> None:
        self.attempts += 1
        if self.fail_from is not None and self.attempts >= self.fail_from:
            raise ConnectionResetError("consumer went away")
        self.records.append(record)
        if self.on_send is not None:
            self.on_send(record)

    @property
    def channels(self) -> List[Channel]:
        return [r.channel for r in self.records]

    @property
    def kinds(self) -> List[str]:
        return [r.kind.value for r in self.records]

    @property
    def errors(self) -> List[str]:
        return [r.payload for r in self.records if r.channel is Channel.ERROR]


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    """Metrics bound to a fresh registry."""
    return StreamMetrics(registry)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    yield
