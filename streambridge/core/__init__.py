"""
streambridge Core Module

Shared data models, error taxonomy and configuration.
"""

from .models import (
    EventKind,
    FinishReason,
    NormalizedEvent,
    Provider,
    StreamEnd,
    StreamError,
    StreamFinish,
    StreamStart,
    TextDelta,
    Usage,
)
from .errors import (
    BridgeException,
    ChunkDecodeError,
    ConfigurationError,
    DecodeFailure,
    EmitError,
    InvalidRequestError,
    ErrorDetails,
    ErrorType,
    MissingAPIKeyError,
    PayloadDecodeError,
    TransportError,
    UnsupportedProviderError,
    UpstreamStatusError,
)
from .config import Settings, parse_provider, redact_secret

__all__ = [
    # Models
    "EventKind",
    "FinishReason",
    "NormalizedEvent",
    "Provider",
    "StreamEnd",
    "StreamError",
    "StreamFinish",
    "StreamStart",
    "TextDelta",
    "Usage",
    # Errors
    "BridgeException",
    "ChunkDecodeError",
    "ConfigurationError",
    "DecodeFailure",
    "EmitError",
    "InvalidRequestError",
    "ErrorDetails",
    "ErrorType",
    "MissingAPIKeyError",
    "PayloadDecodeError",
    "TransportError",
    "UnsupportedProviderError",
    "UpstreamStatusError",
    # Config
    "Settings",
    "parse_provider",
    "redact_secret",
]
