"""
streambridge - Upstream Event Schemas

Pydantic models for the two upstream SSE payload shapes. Unknown fields
are ignored so newer provider fields never break decoding.

- AnthropicEvent: Messages API stream (type-tagged events)
- OpenAIChunk: Chat Completions stream (choice-array chunks)
"""

from typing import ClassVar, List, Optional, Union

from pydantic import BaseModel, Field

from ..core.models import Provider


# ============================================================
# Anthropic Messages API
# ============================================================

class AnthropicUsage(BaseModel):
    """Token counts as reported by Anthropic."""
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


class AnthropicDelta(BaseModel):
    """Delta carried by content_block_delta and message_delta."""
    type: Optional[str] = None
    text: Optional[str] = None
    stop_reason: Optional[str] = None


class AnthropicMessage(BaseModel):
    """Message metadata carried by message_start."""
    id: Optional[str] = None
    model: Optional[str] = None
    role: Optional[str] = None
    usage: Optional[AnthropicUsage] = None


class AnthropicErrorBody(BaseModel):
    type: str = "error"
    message: str = ""


class AnthropicEvent(BaseModel):
    """One Anthropic stream event."""
    provider: ClassVar[Provider] = Provider.ANTHROPIC

    type: str
    index: Optional[int] = None
    delta: Optional[AnthropicDelta] = None
    message: Optional[AnthropicMessage] = None
    usage: Optional[AnthropicUsage] = None
    error: Optional[AnthropicErrorBody] = None


# ============================================================
# OpenAI Chat Completions API
# ============================================================

class OpenAIDelta(BaseModel):
    role: Optional[str] = None
    content: Optional[str] = None


class OpenAIChoice(BaseModel):
    index: int = 0
    delta: Optional[OpenAIDelta] = None
    finish_reason: Optional[str] = None


class OpenAIErrorBody(BaseModel):
    message: str = ""
    type: Optional[str] = None
    code: Optional[str] = None


class OpenAIChunk(BaseModel):
    """One OpenAI chat.completion.chunk."""
    provider: ClassVar[Provider] = Provider.OPENAI

    id: str = ""
    model: Optional[str] = None
    choices: List[OpenAIChoice] = Field(default_factory=list)
    error: Optional[OpenAIErrorBody] = None


ProviderEvent = Union[AnthropicEvent, OpenAIChunk]
