"""
streambridge - Provider Adapter Base

Abstract base class for upstream provider adapters.
Each provider (Anthropic, OpenAI) implements this interface.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..core.config import DEFAULT_BASE_URLS
from ..core.models import Provider
from ..observability.metrics import StreamMetrics
from ..streaming.driver import SessionResult, StreamDriver, UpstreamRequest
from ..streaming.emitter import ConsumerSink


@dataclass
class AdapterConfig:
    """Configuration for a provider adapter."""
    api_key: str
    base_url: Optional[str] = None
    report_decode_errors: bool = True


class ProviderAdapter(ABC):
    """
    Abstract base class for provider adapters.

    The adapter is responsible for:
    1. Building the provider request (URL, auth headers, body)
    2. Selecting the event schema the stream is decoded with
    3. Running one driver session per stream() call

    The request body is passed through in the provider's native format;
    only `stream` is forced on.
    """

    provider: Provider
    STREAM_PATH: str

    def __init__(
        self,
        config: AdapterConfig,
        client: httpx.AsyncClient,
        metrics: Optional[StreamMetrics] = None,
    ):
        self.config = config
        self.client = client
        self.base_url = (config.base_url or DEFAULT_BASE_URLS[self.provider]).rstrip("/")
        self.driver = StreamDriver(
            client,
            metrics=metrics,
            report_decode_errors=config.report_decode_errors,
        )

    @abstractmethod
    def build_headers(self) -> Dict[str, str]:
        """Auth and content headers for the upstream request."""
        pass

    def build_request(self, body: Dict[str, Any]) -> UpstreamRequest:
        """
        Build the upstream streaming request.

        Args:
            body: Provider-native JSON request body

        Returns:
            Request with `stream: true` set on a copy of the body
        """
        payload = dict(body)
        payload["stream"] = True
        return UpstreamRequest(
            provider=self.provider,
            url=f"{self.base_url}{self.STREAM_PATH}",
            headers=self.build_headers(),
            body=payload,
        )

    async def stream(
        self,
        body: Dict[str, Any],
        sink: ConsumerSink,
        cancel_event: Optional[asyncio.Event] = None,
        session_id: Optional[str] = None,
    ) -> SessionResult:
        """
        Stream one completion into a sink.

        Raises:
            TransportError, UpstreamStatusError, EmitError: Fatal session failures
        """
        request = self.build_request(body)
        return await self.driver.run(request, sink, cancel_event=cancel_event, session_id=session_id)
