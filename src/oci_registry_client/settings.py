"""
Settings and configuration for the registry client CLI.

Centralizes configuration values and provides validation with fail-fast behavior.
The library itself takes explicit arguments; only the CLI layer loads these
settings from environment variables.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional

from .download import FailurePolicy

__all__ = ["Settings", "create_settings_from_env"]

DEFAULT_SERVICE = "registry.docker.io"
DEFAULT_API_URL = "https://registry-1.docker.io"
DEFAULT_AUTH_URL = "https://auth.docker.io/token"


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for registry access.

    Registry Settings:
        service: Registry service name used in token scopes
        api_url: Distribution API base URL
        auth_url: Token endpoint URL
        http_timeout_s: HTTP read timeout in seconds

    Download Settings:
        verify_digests: Hash streamed layers and reject mismatches
        failure_policy: "continue" or "abort" when one layer fails
        chunk_size: Fixed read size in bytes (None = as received)
    """
    service: str = DEFAULT_SERVICE
    api_url: str = DEFAULT_API_URL
    auth_url: str = DEFAULT_AUTH_URL
    http_timeout_s: float = 30.0

    verify_digests: bool = True
    failure_policy: FailurePolicy = FailurePolicy.CONTINUE
    chunk_size: Optional[int] = None

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.service:
            raise ValueError("service is required")

        url_pattern = r"^https?://[a-zA-Z0-9.-]+(?::[0-9]+)?(?:/.*)?$"
        for name in ("api_url", "auth_url"):
            value = getattr(self, name)
            if not value or not re.match(url_pattern, value):
                raise ValueError(f"Invalid {name} format: {value!r}")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.chunk_size is not None and self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

        try:
            object.__setattr__(self, "failure_policy", FailurePolicy(self.failure_policy))
        except ValueError:
            raise ValueError(
                f"failure_policy must be 'continue' or 'abort', got {self.failure_policy!r}"
            ) from None


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        - OCI_REGISTRY_SERVICE (default: registry.docker.io)
        - OCI_REGISTRY_API_URL (default: https://registry-1.docker.io)
        - OCI_REGISTRY_AUTH_URL (default: https://auth.docker.io/token)
        - OCI_REGISTRY_HTTP_TIMEOUT (default: 30.0)
        - OCI_REGISTRY_VERIFY_DIGESTS (default: true)
        - OCI_REGISTRY_FAILURE_POLICY (default: continue)
        - OCI_REGISTRY_CHUNK_SIZE (optional)

    Raises:
        ValueError: If configuration is invalid

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_optional_int(key: str) -> Optional[int]:
        value = os.getenv(key)
        return int(value) if value else None

    return Settings(
        service=os.getenv("OCI_REGISTRY_SERVICE", DEFAULT_SERVICE),
        api_url=os.getenv("OCI_REGISTRY_API_URL", DEFAULT_API_URL),
        auth_url=os.getenv("OCI_REGISTRY_AUTH_URL", DEFAULT_AUTH_URL),
        http_timeout_s=get_float("OCI_REGISTRY_HTTP_TIMEOUT", 30.0),
        verify_digests=str_to_bool(os.getenv("OCI_REGISTRY_VERIFY_DIGESTS", "true")),
        failure_policy=os.getenv("OCI_REGISTRY_FAILURE_POLICY", FailurePolicy.CONTINUE.value),
        chunk_size=get_optional_int("OCI_REGISTRY_CHUNK_SIZE"),
    )
