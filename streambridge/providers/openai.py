"""
streambridge - OpenAI Provider Adapter

Streams the OpenAI Chat Completions API (`POST /v1/chat/completions`).
"""

from typing import Dict

from ..core.models import Provider
from .base import ProviderAdapter


class OpenAIAdapter(ProviderAdapter):
    """Adapter for OpenAI chat completion streaming."""

    provider = Provider.OPENAI
    STREAM_PATH = "/v1/chat/completions"

    def build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
