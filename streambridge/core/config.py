"""
streambridge - Configuration

Settings are read from environment variables once at startup.
Provider credentials are looked up on demand so a missing key only fails
the request that needs it.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import httpx

from ..observability.logging import get_logger
from .errors import ConfigurationError, MissingAPIKeyError, UnsupportedProviderError
from .models import Provider


logger = get_logger(__name__)


API_KEY_ENV_VARS: Dict[Provider, str] = {
    Provider.ANTHROPIC: "ANTHROPIC_API_KEY",
    Provider.OPENAI: "OPENAI_API_KEY",
}

DEFAULT_BASE_URLS: Dict[Provider, str] = {
    Provider.ANTHROPIC: "https://api.anthropic.com",
    Provider.OPENAI: "https://api.openai.com",
}

DEFAULT_ANTHROPIC_VERSION = "2023-06-01"


def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got `{raw}`")
    if value <= 0:
        raise ConfigurationError(f"{key} must be positive, got `{raw}`")
    return value


def _parse_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got `{raw}`")


def redact_secret(value: str) -> str:
    """Keep the first and last five characters of a long secret."""
    if len(value) > 10:
        return f"{value[:5]}...{value[-5:]}"
    return "***REDACTED***"


def parse_provider(name: str) -> Provider:
    """Resolve a provider name, case-insensitively."""
    try:
        return Provider(name.strip().lower())
    except ValueError:
        raise UnsupportedProviderError(name)


@dataclass
class Settings:
    """Runtime configuration."""
    api_keys: Dict[Provider, str] = field(default_factory=dict)
    base_urls: Dict[Provider, str] = field(default_factory=lambda: dict(DEFAULT_BASE_URLS))
    anthropic_version: str = DEFAULT_ANTHROPIC_VERSION

    # Transport timeouts (seconds)
    connect_timeout: float = 10.0
    read_timeout: float = 60.0

    # Report malformed payloads to the consumer as stream errors
    report_decode_errors: bool = True

    # Records buffered between a session and a slow HTTP consumer
    sink_queue_size: int = 64

    log_level: str = "INFO"
    log_format: str = "json"
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables."""
        env = os.environ if env is None else env

        api_keys = {}
        for provider, var in API_KEY_ENV_VARS.items():
            key = env.get(var, "").strip()
            if key:
                api_keys[provider] = key

        base_urls = dict(DEFAULT_BASE_URLS)
        for provider in Provider:
            override = env.get(f"{provider.name}_BASE_URL", "").strip()
            if override:
                base_urls[provider] = override.rstrip("/")

        sink_queue_size = _parse_int(env, "SINK_QUEUE_SIZE", 64)
        if sink_queue_size < 1:
            raise ConfigurationError(f"SINK_QUEUE_SIZE must be at least 1, got `{sink_queue_size}`")

        port = _parse_int(env, "PORT", 8000)
        if not (0 < port < 65536):
            raise ConfigurationError(f"PORT must be between 1 and 65535, got `{port}`")

        return cls(
            api_keys=api_keys,
            base_urls=base_urls,
            anthropic_version=env.get("ANTHROPIC_VERSION", "").strip() or DEFAULT_ANTHROPIC_VERSION,
            connect_timeout=_parse_float(env, "CONNECT_TIMEOUT", 10.0),
            read_timeout=_parse_float(env, "READ_TIMEOUT", 60.0),
            report_decode_errors=_is_truthy(env.get("REPORT_DECODE_ERRORS", "true")),
            sink_queue_size=sink_queue_size,
            log_level=env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
            log_format=env.get("LOG_FORMAT", "json").strip().lower() or "json",
            host=env.get("HOST", "127.0.0.1").strip() or "127.0.0.1",
            port=port,
        )

    def load_api_key(self, provider: Provider) -> str:
        """
        Return the API key for a provider.

        Raises:
            MissingAPIKeyError: If the key is not configured
        """
        env_var = API_KEY_ENV_VARS[provider]
        key = self.api_keys.get(provider)
        if not key:
            logger.warning(f"{env_var} is not configured", provider=provider.value)
            raise MissingAPIKeyError(provider.value, env_var)

        logger.debug(
            f"{env_var} loaded",
            provider=provider.value,
            key_preview=redact_secret(key),
        )
        return key

    def configured_providers(self) -> List[Provider]:
        return [p for p in Provider if self.api_keys.get(p)]

    def timeout(self) -> httpx.Timeout:
        """Transport timeouts for upstream requests."""
        return httpx.Timeout(self.read_timeout, connect=self.connect_timeout)
