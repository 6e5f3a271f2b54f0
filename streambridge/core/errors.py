"""
streambridge - Error Definitions

Error taxonomy for streaming translation, split by whether the failure
ends the session:

- Fatal: TransportError, UpstreamStatusError, EmitError
- Recoverable: DecodeFailure (ChunkDecodeError, PayloadDecodeError)
- Pre-session: ConfigurationError, MissingAPIKeyError, UnsupportedProviderError,
  InvalidRequestError

Cancellation is not an error and has no class here.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(str, Enum):
    """Error classification."""
    FATAL = "fatal_error"
    RECOVERABLE = "recoverable_error"
    CONFIG = "config_error"
    REQUEST = "invalid_request_error"


@dataclass
class ErrorDetails:
    """Full error information."""
    # Core fields (always present)
    code: str
    message: str
    type: ErrorType

    # Context fields
    provider: Optional[str] = None
    session_id: str = ""

    # Upstream fields
    status_code: Optional[int] = None
    response_body: Optional[str] = None

    # Debug fields
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "code": self.code,
            "message": self.message,
            "type": self.type.value,
        }

        if self.provider:
            result["provider"] = self.provider
        if self.session_id:
            result["session_id"] = self.session_id
        if self.status_code is not None:
            result["status_code"] = self.status_code
        if self.response_body:
            result["response_body"] = self.response_body
        if self.details:
            result["details"] = self.details

        return {"error": result}


class BridgeException(Exception):
    """Base exception for all streambridge errors."""

    def __init__(self, error: ErrorDetails, status_code: int = 500):
        self.error = error
        self.status_code = status_code
        super().__init__(error.message)


# ============================================================
# Fatal Errors
# ============================================================

class TransportError(BridgeException):
    """Connection, read or timeout failure on the upstream body."""

    def __init__(
        self,
        provider: str,
        message: str,
        session_id: str = "",
        code: str = "transport_error",
    ):
        super().__init__(
            ErrorDetails(
                code=code,
                message=message,
                type=ErrorType.FATAL,
                provider=provider,
                session_id=session_id,
            ),
            status_code=502
        )


class UpstreamStatusError(BridgeException):
    """Upstream answered with a non-success status code."""

    def __init__(
        self,
        provider: str,
        upstream_status: int,
        body: str = "",
        session_id: str = "",
    ):
        self.upstream_status = upstream_status
        self.body = body
        super().__init__(
            ErrorDetails(
                code=f"upstream_{upstream_status}",
                message=f"{provider} API request failed with status {upstream_status}: {body}",
                type=ErrorType.FATAL,
                provider=provider,
                session_id=session_id,
                status_code=upstream_status,
                response_body=body or None,
            ),
            status_code=502
        )


class EmitError(BridgeException):
    """Consumer sink rejected a record."""

    def __init__(self, message: str, session_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="emit_failed",
                message=message,
                type=ErrorType.FATAL,
                session_id=session_id,
            ),
            status_code=500
        )


# ============================================================
# Recoverable Errors
# ============================================================

class DecodeFailure(BridgeException):
    """Base class for failures absorbed by the driver loop."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            ErrorDetails(
                code=code,
                message=message,
                type=ErrorType.RECOVERABLE,
                details=details or {},
            ),
            status_code=500
        )


class ChunkDecodeError(DecodeFailure):
    """Chunk bytes are not valid UTF-8."""

    def __init__(self, reason: str, chunk_size: int = 0):
        super().__init__(
            "chunk_decode_error",
            f"Failed to decode chunk as UTF-8: {reason}",
            {"chunk_size": chunk_size},
        )


class PayloadDecodeError(DecodeFailure):
    """Event payload is not valid JSON or does not match the schema."""

    def __init__(self, provider: str, reason: str, payload: str = ""):
        self.payload = payload
        super().__init__(
            "payload_decode_error",
            f"Failed to parse {provider} event payload: {reason}",
            {"payload_preview": payload[:200]},
        )


# ============================================================
# Configuration Errors
# ============================================================

class ConfigurationError(BridgeException):
    """Invalid or incomplete configuration."""

    def __init__(self, message: str, code: str = "invalid_configuration", status_code: int = 500):
        super().__init__(
            ErrorDetails(code=code, message=message, type=ErrorType.CONFIG),
            status_code=status_code
        )


class MissingAPIKeyError(ConfigurationError):
    """Provider credential is not configured."""

    def __init__(self, provider: str, env_var: str):
        self.env_var = env_var
        super().__init__(
            f"Failed to load {env_var}: not set in environment",
            code="missing_api_key",
            status_code=401
        )
        self.error.provider = provider


class UnsupportedProviderError(ConfigurationError):
    """No adapter registered for the requested provider."""

    def __init__(self, provider: str):
        super().__init__(
            f"Unsupported provider: {provider}",
            code="unsupported_provider",
            status_code=404
        )
        self.error.provider = provider


# ============================================================
# Request Errors
# ============================================================

class InvalidRequestError(BridgeException):
    """Client request can not be forwarded upstream."""

    def __init__(self, message: str, code: str = "invalid_request"):
        super().__init__(
            ErrorDetails(code=code, message=message, type=ErrorType.REQUEST),
            status_code=400
        )
