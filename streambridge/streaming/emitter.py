"""
streambridge - Downstream Emission

Encodes normalized events into downstream records and delivers them, in
order, to a single consumer sink.

Record format (AI SDK data stream parts on the chunk channel):
- TextDelta     -> ai-stream-chunk  `0:"<json string>"\\n`
- StreamStart   -> ai-stream-chunk  `f:{"messageId": ...}\\n`
- StreamFinish  -> ai-stream-chunk  `d:{"finishReason": ..., "usage": {...}}\\n`
- StreamError   -> ai-stream-error  plain message
- StreamEnd     -> ai-stream-end    no payload

Text is JSON-string escaped with ASCII output, so every record is one line
and decodes back to the exact original text.
"""

import asyncio
import inspect
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Optional, Protocol

from ..core.errors import EmitError
from ..core.models import (
    EventKind,
    NormalizedEvent,
    StreamEnd,
    StreamError,
    StreamFinish,
    StreamStart,
    TextDelta,
)
from ..observability.logging import get_logger
from ..observability.metrics import StreamMetrics


logger = get_logger(__name__)


class Channel(str, Enum):
    """Downstream event channels."""
    CHUNK = "ai-stream-chunk"
    ERROR = "ai-stream-error"
    END = "ai-stream-end"


class StreamPart(str, Enum):
    """Data stream part codes."""
    TEXT = "0"
    ERROR = "3"
    FINISH = "d"
    START = "f"


@dataclass(frozen=True)
class DownstreamRecord:
    """One record delivered to the consumer."""
    channel: Channel
    kind: EventKind
    payload: Optional[str] = None

    def to_wire(self) -> str:
        """
        Render as a data stream line for byte-oriented consumers.

        Chunk payloads are already lines; errors become `3:` parts and the
        end record renders as nothing.
        """
        if self.channel is Channel.CHUNK:
            return self.payload or ""
        if self.channel is Channel.ERROR:
            return format_part(StreamPart.ERROR, self.payload or "")
        return ""


def format_part(part: StreamPart, value: Any) -> str:
    """Serialize one data stream part as a single line."""
    return f"{part.value}:{json.dumps(value, separators=(',', ':'))}\n"


def parse_part(line: str):
    """Split a data stream line into its part code and decoded value."""
    code, sep, raw = line.rstrip("\n").partition(":")
    if not sep:
        raise ValueError(f"Not a data stream part: {line!r}")
    return StreamPart(code), json.loads(raw)


def encode_event(event: NormalizedEvent) -> DownstreamRecord:
    """Encode one normalized event as a downstream record."""
    if isinstance(event, TextDelta):
        return DownstreamRecord(Channel.CHUNK, event.kind, format_part(StreamPart.TEXT, event.text))

    if isinstance(event, StreamStart):
        return DownstreamRecord(Channel.CHUNK, event.kind, format_part(StreamPart.START, event.metadata))

    if isinstance(event, StreamFinish):
        finish = {"finishReason": event.reason}
        if event.usage is not None:
            finish["usage"] = event.usage.to_dict()
        return DownstreamRecord(Channel.CHUNK, event.kind, format_part(StreamPart.FINISH, finish))

    if isinstance(event, StreamError):
        return DownstreamRecord(Channel.ERROR, event.kind, event.message)

    if isinstance(event, StreamEnd):
        return DownstreamRecord(Channel.END, event.kind)

    raise TypeError(f"Unsupported event type: {type(event).__name__}")


# ============================================================
# Consumer Sinks
# ============================================================

class ConsumerSink(Protocol):
    """Receives records one at a time; raising means the record was not delivered."""

    async def send(self, record: DownstreamRecord) -> None:
        ...


class SinkClosedError(Exception):
    """The consumer behind a sink has gone away."""


class CallbackSink:
    """Delivers records to a plain or async callable."""

    def __init__(self, callback: Callable[[DownstreamRecord], Any]):
        self._callback = callback

    async def send(self, record: DownstreamRecord) -> None:
        result = self._callback(record)
        if inspect.isawaitable(result):
            await result


class QueueSink:
    """
    Bounded queue between a session and a consumer task.

    A full queue blocks send(), which holds back upstream reads until the
    consumer catches up.
    """

    def __init__(self, maxsize: int = 64):
        self._queue: "asyncio.Queue[Optional[DownstreamRecord]]" = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, record: DownstreamRecord) -> None:
        if self._closed:
            raise SinkClosedError("consumer disconnected")
        await self._queue.put(record)

    def close(self) -> None:
        """Consumer side: refuse further records."""
        self._closed = True

    def finish(self) -> None:
        """Producer side: no more records will be sent."""
        self._finished = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # consumer drains the backlog and then sees _finished
            pass

    async def records(self) -> AsyncIterator[DownstreamRecord]:
        """Consume records until the producer finishes or the end record arrives."""
        while True:
            if self._finished and self._queue.empty():
                return
            record = await self._queue.get()
            if record is None:
                return
            yield record
            if record.channel is Channel.END:
                return


# ============================================================
# Emitter
# ============================================================

class EventEmitter:
    """
    Ordered delivery of normalized events to one sink.

    Every sink failure surfaces as EmitError. Nothing can be emitted after
    StreamEnd.
    """

    def __init__(
        self,
        sink: ConsumerSink,
        provider: str = "",
        metrics: Optional[StreamMetrics] = None,
    ):
        self.sink = sink
        self.provider = provider
        self.metrics = metrics
        self.ended = False
        self.emitted = 0
        self.started_at = time.monotonic()
        self.first_text_at: Optional[float] = None

    async def emit(self, event: NormalizedEvent) -> None:
        """
        Send one event.

        Raises:
            EmitError: If the sink rejects the record or the stream has ended
        """
        if self.ended:
            raise EmitError(f"Cannot emit {event.kind.value} after stream end")

        record = encode_event(event)
        try:
            await self.sink.send(record)
        except Exception as e:
            raise EmitError(f"Failed to emit {event.kind.value} event: {e}") from e

        self.emitted += 1
        if event.kind is EventKind.STREAM_END:
            self.ended = True
        elif event.kind is EventKind.TEXT_DELTA and self.first_text_at is None:
            self.first_text_at = time.monotonic()
            if self.metrics is not None:
                self.metrics.record_time_to_first_token(self.provider, self.first_text_at - self.started_at)

        if self.metrics is not None:
            self.metrics.record_event(self.provider, event.kind.value)
        logger.debug(f"Emitted {event.kind.value}", channel=record.channel.value)
