"""
streambridge - Anthropic Provider Adapter

Streams the Anthropic Messages API (`POST /v1/messages`).
"""

from typing import Dict, Optional

import httpx

from ..core.config import DEFAULT_ANTHROPIC_VERSION
from ..core.models import Provider
from ..observability.metrics import StreamMetrics
from .base import AdapterConfig, ProviderAdapter


class AnthropicAdapter(ProviderAdapter):
    """Adapter for Anthropic Claude streaming."""

    provider = Provider.ANTHROPIC
    STREAM_PATH = "/v1/messages"

    def __init__(
        self,
        config: AdapterConfig,
        client: httpx.AsyncClient,
        metrics: Optional[StreamMetrics] = None,
        api_version: str = DEFAULT_ANTHROPIC_VERSION,
    ):
        super().__init__(config, client, metrics)
        self.api_version = api_version

    def build_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.config.api_key,
            "anthropic-version": self.api_version,
            "Content-Type": "application/json",
        }
