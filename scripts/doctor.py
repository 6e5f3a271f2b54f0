"""Environment compatibility and preflight checks for local setup."""

from __future__ import annotations

import os
import socket
import sys
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from streambridge.core.config import API_KEY_ENV_VARS, Settings
from streambridge.core.errors import ConfigurationError

MIN_PYTHON = (3, 9)

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class DoctorResult:
    ok: bool
    messages: List[str]


def _python_version_tuple() -> Tuple[int, int, int]:
    v = sys.version_info
    return (v.major, v.minor, v.micro)


def _check_python_version(errors: List[str]) -> None:
    current = _python_version_tuple()
    if current[:2] < MIN_PYTHON:
        errors.append(
            f"Python {current[0]}.{current[1]} is unsupported. "
            f"Use Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]} or newer."
        )


def _load_settings(env: Mapping[str, str], errors: List[str]) -> Optional[Settings]:
    try:
        return Settings.from_env(env)
    except ConfigurationError as exc:
        errors.append(exc.error.message + ".")
        return None


def _check_provider_keys(settings: Settings, warnings: List[str]) -> None:
    if not settings.configured_providers():
        names = " or ".join(f"`{var}`" for var in API_KEY_ENV_VARS.values())
        warnings.append(f"No provider keys configured. Set {names} before streaming.")


def _check_base_urls(settings: Settings, errors: List[str]) -> None:
    for provider, url in settings.base_urls.items():
        if not url.startswith(("http://", "https://")):
            errors.append(f"{provider.name}_BASE_URL must start with http:// or https://, got `{url}`.")


def _check_log_settings(settings: Settings, errors: List[str]) -> None:
    if settings.log_level not in LOG_LEVELS:
        errors.append(f"LOG_LEVEL must be one of: {', '.join(sorted(LOG_LEVELS))}.")
    if settings.log_format not in {"json", "text"}:
        errors.append("LOG_FORMAT must be one of: json, text.")


def _check_port_binding(settings: Settings, errors: List[str]) -> None:
    host, port = settings.host, settings.port
    bind_host = "127.0.0.1" if host in {"0.0.0.0", "localhost", ""} else host
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((bind_host, port))
    except OSError as exc:
        errors.append(
            f"PORT/HOST conflict: cannot bind {bind_host}:{port} ({exc}). "
            "Pick a free port, e.g. `PORT=8010`."
        )
    finally:
        sock.close()


def run_doctor(env: Optional[Mapping[str, str]] = None) -> DoctorResult:
    env_map: Mapping[str, str] = env or os.environ
    errors: List[str] = []
    warnings: List[str] = []

    _check_python_version(errors)
    settings = _load_settings(env_map, errors)
    if settings is not None:
        _check_provider_keys(settings, warnings)
        _check_base_urls(settings, errors)
        _check_log_settings(settings, errors)
        _check_port_binding(settings, errors)

    messages: List[str] = []
    if errors:
        messages.append("Doctor found configuration issues:")
        for i, msg in enumerate(errors, 1):
            messages.append(f"{i}. {msg}")
        messages.append("Fix the items above and rerun `python -m scripts.doctor`.")
    else:
        messages.append("Doctor checks passed.")

    if warnings:
        messages.append("Warnings:")
        for i, msg in enumerate(warnings, 1):
            messages.append(f"- {msg}")

    return DoctorResult(ok=not errors, messages=messages)


def main() -> int:
    result = run_doctor()
    print("\n".join(result.messages))
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
