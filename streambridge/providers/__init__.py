"""
streambridge Providers Module

Per-provider adapters that build upstream streaming requests and run
translation sessions against them.
"""

from typing import Optional, Union

import httpx

from ..core.config import Settings, parse_provider
from ..core.models import Provider
from ..observability.metrics import StreamMetrics
from .anthropic import AnthropicAdapter
from .base import AdapterConfig, ProviderAdapter
from .openai import OpenAIAdapter

__all__ = [
    "AdapterConfig",
    "ProviderAdapter",
    "AnthropicAdapter",
    "OpenAIAdapter",
    "get_provider",
]


def get_provider(
    provider: Union[str, Provider],
    settings: Settings,
    client: httpx.AsyncClient,
    metrics: Optional[StreamMetrics] = None,
) -> ProviderAdapter:
    """
    Factory function to get the adapter for a provider.

    Args:
        provider: Provider name ("anthropic", "openai") or enum member
        settings: Runtime settings holding credentials and base URLs
        client: Shared HTTP client
        metrics: Metrics collectors (defaults to the global registry)

    Returns:
        Configured adapter instance

    Raises:
        UnsupportedProviderError: If the provider is not supported
        MissingAPIKeyError: If the provider has no API key configured
    """
    if not isinstance(provider, Provider):
        provider = parse_provider(provider)

    config = AdapterConfig(
        api_key=settings.load_api_key(provider),
        base_url=settings.base_urls.get(provider),
        report_decode_errors=settings.report_decode_errors,
    )

    if provider is Provider.ANTHROPIC:
        return AnthropicAdapter(config, client, metrics, api_version=settings.anthropic_version)
    return OpenAIAdapter(config, client, metrics)
