"""Tests for application startup."""

import pytest

from cursor_bot import main


async def test_startup_fails_without_credentials(monkeypatch):
    monkeypatch.setattr(main.settings, "bot_token", "")
    monkeypatch.setattr(main.settings, "gemini_api_key", "g")
    monkeypatch.setattr(main.settings, "cursor_api_key", "")

    with pytest.raises(RuntimeError, match="BOT_TOKEN, CURSOR_API_KEY"):
        await main.start_services()
