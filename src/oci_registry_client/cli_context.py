"""
CLI Context for managing application dependencies.

Provides a clean way to manage CLI-level dependencies like settings and the
registry client, avoiding global state and enabling proper dependency
injection (tests swap in an ``httpx.MockTransport``).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from .client import RegistryClient
from .settings import Settings, create_settings_from_env


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    Holds the settings loaded once per command execution. Registry clients
    are created per event loop run, since an ``httpx.AsyncClient`` must be
    closed on the loop that used it.
    """
    settings: Settings
    transport: Optional[httpx.AsyncBaseTransport] = None

    @classmethod
    def from_env(cls) -> CLIContext:
        """Create CLI context from environment variables."""
        return cls(settings=create_settings_from_env())

    def client(self) -> RegistryClient:
        """Build a registry client for these settings; use it with ``async with``."""
        return RegistryClient.from_settings(self.settings, transport=self.transport)
