from __future__ import annotations

from toolhub.core.config import get_settings, reset_settings
from toolhub.core.constants import CONNECT_TIMEOUT_SECONDS


def test_settings_are_cached_until_reset(monkeypatch):
    monkeypatch.setenv("TOOLHUB_DATABASE_URL", "sqlite+aiosqlite:///./first.db")
    reset_settings()
    try:
        first = get_settings()
        assert first.database_url == "sqlite+aiosqlite:///./first.db"

        monkeypatch.setenv("TOOLHUB_DATABASE_URL", "sqlite+aiosqlite:///./second.db")
        assert get_settings() is first

        reset_settings()
        assert get_settings().database_url == "sqlite+aiosqlite:///./second.db"
    finally:
        reset_settings()


def test_connect_timeout_is_fixed():
    assert get_settings().connect_timeout_seconds == CONNECT_TIMEOUT_SECONDS == 10.0
