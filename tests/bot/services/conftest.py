"""Test configuration and fixtures for bot services.

Services are tested in isolation against a mock API client whose
``get``/``post`` calls return canned httpx-like responses.
"""

from __future__ import annotations

from typing import Any, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from luna_relay.bot.services.base import APIClientProtocol
from luna_relay.bot.services.workflow_client import WorkflowClient
from tests.mocks import TEST_API_URL


class MockAPIClient(APIClientProtocol):
    """Mock API client for testing."""

    def __init__(self):
        self.get = AsyncMock()
        self.post = AsyncMock()
        self.close = AsyncMock()


def make_response(data: Any, status_code: int = 200) -> Mock:
    """Create a mock HTTP response returning ``data`` from ``json()``."""
    response = Mock()
    response.status_code = status_code
    response.json = Mock(return_value=data)
    return response


def workflow_reply(*messages: tuple, status: str = "complete") -> dict:
    """Build a LUNA message response body from (role, content) pairs."""
    return {
        "status": status,
        "messages": [{"role": role, "content": content} for role, content in messages],
    }


@pytest.fixture
def mock_api_client() -> MockAPIClient:
    return MockAPIClient()


@pytest.fixture
def workflow_client(mock_api_client) -> WorkflowClient:
    """Create a WorkflowClient backed by the mock API client."""
    return WorkflowClient(
        mock_api_client,
        workflow_id="discord-root",
        api_url=TEST_API_URL,
        recent_message_limit=20,
        fetch_timeout=1.0,
    )


def queue_responses(client: MockAPIClient, *responses: Optional[Any]) -> None:
    """Make successive ``post`` calls return (or raise) the given items."""
    client.post.side_effect = list(responses)
