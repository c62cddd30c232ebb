"""Test configuration and fixtures for the LUNA relay bot."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from luna_relay.shared.config import Settings
from luna_relay.shared.config import override_settings
from tests.mocks import TEST_API_URL


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return override_settings(
        environment="testing",
        discord_bot_token="test_token",
        luna_api_url=TEST_API_URL,
        luna_workflow_id="discord-root",
        log_level="DEBUG",
    )


@pytest.fixture
def mock_bot() -> Mock:
    """Create a mock Discord bot with empty cache and REST mocks."""
    bot = Mock()
    bot.d = {}
    bot.cache.get_guild_channel = Mock(return_value=None)
    bot.cache.get_guild = Mock(return_value=None)
    bot.rest.fetch_message = AsyncMock(side_effect=RuntimeError("not configured"))
    bot.rest.fetch_channel = AsyncMock(side_effect=RuntimeError("not configured"))
    bot.rest.fetch_guild = AsyncMock(side_effect=RuntimeError("not configured"))
    bot.rest.trigger_typing = Mock(return_value=MagicMock())
    return bot
