"""Environment-driven configuration utilities for the Media Services client."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_SERVICE_URL = "https://media.windows.net/"
DEFAULT_API_VERSION = "2.19"


def _read_float(name: str, default: str, *, minimum: float = 0.0) -> float:
    raw = os.getenv(name, "").strip() or default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a numeric value.") from exc
    if value <= minimum:
        raise ValueError(f"{name} must be greater than {minimum:g}.")
    return value


def _read_int(name: str, default: str) -> int:
    raw = os.getenv(name, "").strip() or default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer.") from exc
    if value <= 0:
        raise ValueError(f"{name} must be greater than zero.")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    """Container for runtime configuration."""

    access_token: str
    service_url: str = DEFAULT_SERVICE_URL
    api_version: str = DEFAULT_API_VERSION
    api_timeout: float = 30.0
    retry_max_attempts: int = 4
    retry_wait_initial: float = 1.0
    retry_wait_max: float = 30.0
    mcp_sse_port: int = 8000

    @classmethod
    def load(cls) -> "Settings":
        """
        Load configuration from environment variables.

        Python-dotenv is used so developers can rely on a local .env file without
        exporting variables globally.
        """
        load_dotenv()

        access_token = os.getenv("MEDIA_SERVICES_ACCESS_TOKEN", "").strip()
        if not access_token:
            raise ValueError("MEDIA_SERVICES_ACCESS_TOKEN is required but was not provided.")

        service_url = os.getenv("MEDIA_SERVICES_URL", "").strip() or DEFAULT_SERVICE_URL
        api_version = os.getenv("MEDIA_SERVICES_API_VERSION", "").strip() or DEFAULT_API_VERSION

        retry_wait_initial = _read_float("RETRY_WAIT_INITIAL", "1")
        retry_wait_max = _read_float("RETRY_WAIT_MAX", "30")
        if retry_wait_max < retry_wait_initial:
            raise ValueError("RETRY_WAIT_MAX must not be smaller than RETRY_WAIT_INITIAL.")

        return cls(
            access_token=access_token,
            service_url=service_url,
            api_version=api_version,
            api_timeout=_read_float("API_TIMEOUT", "30"),
            retry_max_attempts=_read_int("RETRY_MAX_ATTEMPTS", "4"),
            retry_wait_initial=retry_wait_initial,
            retry_wait_max=retry_wait_max,
            mcp_sse_port=_read_int("MCP_SSE_PORT", "8000"),
        )
