"""
streambridge - Core Data Models

Provider selectors and the normalized downstream event vocabulary shared by
every upstream schema.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


# ============================================================
# Enums
# ============================================================

class Provider(str, Enum):
    """Supported upstream providers (one SSE schema each)."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class FinishReason(str, Enum):
    """Completion finish reasons."""
    STOP = "stop"


class EventKind(str, Enum):
    """Kinds of normalized events."""
    TEXT_DELTA = "text_delta"
    STREAM_START = "stream_start"
    STREAM_FINISH = "stream_finish"
    STREAM_ERROR = "stream_error"
    STREAM_END = "stream_end"


# ============================================================
# Usage
# ============================================================

@dataclass
class Usage:
    """Token usage reported by the upstream."""
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def merge(self, other: "Usage") -> "Usage":
        """Combine with a later report, keeping non-zero counts from either."""
        return Usage(
            prompt_tokens=other.prompt_tokens or self.prompt_tokens,
            completion_tokens=other.completion_tokens or self.completion_tokens,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
        }


# ============================================================
# Normalized Events
# ============================================================

@dataclass(frozen=True)
class TextDelta:
    """Incremental fragment of generated text."""
    text: str
    kind: EventKind = field(default=EventKind.TEXT_DELTA, init=False)


@dataclass(frozen=True)
class StreamStart:
    """Upstream message started; metadata carries an opaque identifier."""
    metadata: Dict[str, Any] = field(default_factory=dict)
    kind: EventKind = field(default=EventKind.STREAM_START, init=False)


@dataclass(frozen=True)
class StreamFinish:
    """Upstream reported completion."""
    reason: str = FinishReason.STOP.value
    usage: Optional[Usage] = None
    kind: EventKind = field(default=EventKind.STREAM_FINISH, init=False)


@dataclass(frozen=True)
class StreamError:
    """Error surfaced to the consumer. Not terminal by itself."""
    message: str
    kind: EventKind = field(default=EventKind.STREAM_ERROR, init=False)


@dataclass(frozen=True)
class StreamEnd:
    """Terminal marker; always the last event of a drained session."""
    kind: EventKind = field(default=EventKind.STREAM_END, init=False)


NormalizedEvent = Union[TextDelta, StreamStart, StreamFinish, StreamError, StreamEnd]
