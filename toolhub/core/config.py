"""Centralized configuration for the tool hub.

This module consolidates environment-driven settings such as the
database URL, connect/call timeouts, client identity and API binding.

Other modules should import Settings via `get_settings()` and avoid
reading environment variables directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .constants import (
    CLIENT_NAME,
    CLIENT_VERSION,
    CONNECT_TIMEOUT_SECONDS,
    DEFAULT_TOOL_CALL_TIMEOUT_SECONDS,
    PROCESS_TERMINATE_GRACE_SECONDS,
)


# Load env once at import (idempotent if already loaded elsewhere)
load_dotenv()


@dataclass(frozen=True)
class Settings:
    # Persistence
    database_url: str = "sqlite+aiosqlite:///./mcp-tools.db"

    # Connections
    connect_timeout_seconds: float = CONNECT_TIMEOUT_SECONDS
    tool_call_timeout_seconds: float = float(
        os.getenv("TOOL_CALL_TIMEOUT_SECONDS", str(DEFAULT_TOOL_CALL_TIMEOUT_SECONDS))
    )
    process_terminate_grace_seconds: float = PROCESS_TERMINATE_GRACE_SECONDS
    sse_read_timeout_seconds: float = float(os.getenv("SSE_READ_TIMEOUT_SECONDS", "300"))

    # Identity sent in the initialize handshake
    client_name: str = os.getenv("TOOLHUB_CLIENT_NAME", CLIENT_NAME)
    client_version: str = CLIENT_VERSION

    # API / logging
    api_host: str = os.getenv("TOOLHUB_API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("TOOLHUB_API_PORT", "8000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


_cached_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return cached settings (loaded from environment) to be used across modules."""
    global _cached_settings
    if _cached_settings is not None:
        return _cached_settings

    database_url = os.getenv("TOOLHUB_DATABASE_URL", "sqlite+aiosqlite:///./mcp-tools.db")

    _cached_settings = Settings(database_url=database_url)
    return _cached_settings


def reset_settings() -> None:
    """Drop the cached settings so the next `get_settings()` re-reads the environment."""
    global _cached_settings
    _cached_settings = None
