"""
streambridge - Provider Event Decoders

Decodes one SSE block into a provider event and classifies it into
normalized events. The schema is chosen by the caller for the whole session;
payloads are never sniffed.

Adding a provider means adding a schema model, a normalizer class and one
entry in each registry below.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from ..core.errors import PayloadDecodeError, UnsupportedProviderError
from ..core.models import (
    FinishReason,
    NormalizedEvent,
    Provider,
    StreamError,
    StreamFinish,
    StreamStart,
    TextDelta,
    Usage,
)
from ..observability.logging import get_logger
from .framing import EventBlock
from .schemas import AnthropicEvent, AnthropicUsage, OpenAIChunk, ProviderEvent


logger = get_logger(__name__)

DONE_SENTINEL = "[DONE]"

SCHEMA_MODELS: Dict[Provider, Type[BaseModel]] = {
    Provider.ANTHROPIC: AnthropicEvent,
    Provider.OPENAI: OpenAIChunk,
}


def _summarize_validation_error(error: ValidationError) -> str:
    first = error.errors()[0] if error.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    return f"{location}: {first.get('msg', 'invalid')}"


def decode(block: EventBlock, schema: Provider) -> Optional[ProviderEvent]:
    """
    Parse a block's payload against the session schema.

    Returns:
        The provider event, or None for blocks without a payload and for
        the [DONE] sentinel

    Raises:
        PayloadDecodeError: If the payload is not valid JSON or does not
            match the schema
    """
    payload = block.data
    if payload is None or not payload.strip():
        logger.debug("Skipping event block without data payload")
        return None

    if payload.strip() == DONE_SENTINEL:
        logger.debug(f"{schema.value} {DONE_SENTINEL} signal received")
        return None

    model = SCHEMA_MODELS.get(schema)
    if model is None:
        raise UnsupportedProviderError(getattr(schema, "value", str(schema)))

    try:
        return model.model_validate_json(payload)
    except ValidationError as e:
        raise PayloadDecodeError(schema.value, _summarize_validation_error(e), payload) from e


# ============================================================
# Normalizers
# ============================================================

class EventNormalizer(ABC):
    """
    Maps one provider's events to normalized events.

    Instances live for one session and may keep small bits of state.
    """

    provider: Provider

    @abstractmethod
    def normalize(self, event: ProviderEvent) -> List[NormalizedEvent]:
        """Return the normalized events for one provider event, in order."""
        pass


class AnthropicNormalizer(EventNormalizer):
    """
    Anthropic Messages stream.

    message_start -> StreamStart, text content_block_delta -> TextDelta,
    message_stop -> StreamFinish, error -> StreamError. Usage reported by
    message_start and message_delta is attached to the finish event.
    """

    provider = Provider.ANTHROPIC

    # Events that carry no downstream meaning
    SILENT_EVENTS = {"ping", "content_block_start", "content_block_stop"}

    def __init__(self):
        self.usage: Optional[Usage] = None

    def _remember_usage(self, usage: Optional[AnthropicUsage]) -> None:
        if usage is None:
            return
        reported = Usage(
            prompt_tokens=usage.input_tokens or 0,
            completion_tokens=usage.output_tokens or 0,
        )
        self.usage = reported if self.usage is None else self.usage.merge(reported)

    def normalize(self, event: AnthropicEvent) -> List[NormalizedEvent]:
        event_type = event.type

        if event_type == "message_start":
            metadata = {}
            if event.message is not None:
                if event.message.id:
                    metadata["messageId"] = event.message.id
                self._remember_usage(event.message.usage)
            return [StreamStart(metadata=metadata)]

        if event_type == "content_block_delta":
            delta = event.delta
            if delta is not None and delta.type == "text_delta" and delta.text is not None:
                return [TextDelta(delta.text)]
            return []

        if event_type == "message_delta":
            self._remember_usage(event.usage)
            logger.debug("Anthropic message_delta", usage=event.usage.model_dump() if event.usage else None)
            return []

        if event_type == "message_stop":
            self._remember_usage(event.usage)
            return [StreamFinish(reason=FinishReason.STOP.value, usage=self.usage)]

        if event_type == "error":
            if event.error is None:
                return [StreamError("Anthropic API Error Event: unknown error")]
            return [
                StreamError(
                    f"Anthropic API Error Event: [{event.error.type}] {event.error.message}"
                )
            ]

        if event_type in self.SILENT_EVENTS:
            return []

        logger.debug(f"Unknown Anthropic event type received: {event_type}")
        return []


class OpenAINormalizer(EventNormalizer):
    """
    OpenAI Chat Completions stream.

    Each choice yields a TextDelta for non-empty content and a StreamFinish
    when it carries a finish_reason. Per-chunk usage is not reported.
    """

    provider = Provider.OPENAI

    def normalize(self, event: OpenAIChunk) -> List[NormalizedEvent]:
        if event.error is not None:
            return [StreamError(f"OpenAI API Error Event: {event.error.message}")]

        events: List[NormalizedEvent] = []
        for choice in event.choices:
            content = choice.delta.content if choice.delta is not None else None
            if content:
                events.append(TextDelta(content))
            if choice.finish_reason:
                logger.debug(
                    f"OpenAI choice finished with reason: {choice.finish_reason}",
                    choice_index=choice.index,
                )
                events.append(StreamFinish(reason=choice.finish_reason))
        return events


NORMALIZERS: Dict[Provider, Type[EventNormalizer]] = {
    Provider.ANTHROPIC: AnthropicNormalizer,
    Provider.OPENAI: OpenAINormalizer,
}


class SessionDecoder:
    """
    Decoder state for one session: block -> normalized events.

    Usage:
        decoder = SessionDecoder(Provider.OPENAI)
        for block in framer.ingest(chunk):
            for event in decoder.process(block):
                await emitter.emit(event)
    """

    def __init__(self, schema: Provider):
        normalizer_class = NORMALIZERS.get(schema)
        if normalizer_class is None:
            raise UnsupportedProviderError(getattr(schema, "value", str(schema)))
        self.schema = schema
        self.normalizer = normalizer_class()

    def process(self, block: EventBlock) -> List[NormalizedEvent]:
        """
        Decode and normalize one block.

        Raises:
            PayloadDecodeError: Recoverable; the session may continue
        """
        event = decode(block, self.schema)
        if event is None:
            return []
        return self.normalizer.normalize(event)


def create_decoder(schema: Provider) -> SessionDecoder:
    """Factory function to create a session decoder."""
    return SessionDecoder(schema)
