"""
streambridge - Streaming Module

Translation pipeline from upstream SSE bytes to downstream records:
- Frame reassembly over arbitrary chunk boundaries
- Per-provider payload decoding and normalization
- Ordered emission to a single consumer sink
- Session driving, failure policy and cancellation
"""

from .framing import DELIMITER, EventBlock, FrameReassembler
from .schemas import AnthropicEvent, OpenAIChunk, ProviderEvent
from .decoders import (
    DONE_SENTINEL,
    AnthropicNormalizer,
    EventNormalizer,
    OpenAINormalizer,
    SessionDecoder,
    create_decoder,
    decode,
)
from .emitter import (
    CallbackSink,
    Channel,
    ConsumerSink,
    DownstreamRecord,
    EventEmitter,
    QueueSink,
    SinkClosedError,
    StreamPart,
    encode_event,
    format_part,
    parse_part,
)
from .driver import (
    DriverState,
    SessionResult,
    StreamDriver,
    StreamSession,
    UpstreamRequest,
)

__all__ = [
    # Framing
    "DELIMITER",
    "EventBlock",
    "FrameReassembler",
    # Decoding
    "AnthropicEvent",
    "OpenAIChunk",
    "ProviderEvent",
    "DONE_SENTINEL",
    "AnthropicNormalizer",
    "EventNormalizer",
    "OpenAINormalizer",
    "SessionDecoder",
    "create_decoder",
    "decode",
    # Emission
    "CallbackSink",
    "Channel",
    "ConsumerSink",
    "DownstreamRecord",
    "EventEmitter",
    "QueueSink",
    "SinkClosedError",
    "StreamPart",
    "encode_event",
    "format_part",
    "parse_part",
    # Driver
    "DriverState",
    "SessionResult",
    "StreamDriver",
    "StreamSession",
    "UpstreamRequest",
]
