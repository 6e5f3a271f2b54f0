"""
streambridge - API Layer

HTTP surface for streaming translation sessions.
"""

from .dependencies import (
    get_http_client,
    get_request_id,
    get_settings,
    get_stream_metrics,
    read_json_body,
)
from .stream import router as stream_router


__all__ = [
    "stream_router",
    "get_http_client",
    "get_request_id",
    "get_settings",
    "get_stream_metrics",
    "read_json_body",
]
