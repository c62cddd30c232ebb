"""Tests for WorkflowClient.

Covers the per-message session lifecycle (create session, system marker,
user message), reply flag detection and the channel session cache.
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from luna_relay.bot.services.exceptions import APIError
from luna_relay.bot.services.exceptions import MessageSendError
from luna_relay.bot.services.exceptions import NetworkError
from luna_relay.bot.services.exceptions import NoActiveSessionError
from luna_relay.bot.services.exceptions import SessionCreationError
from luna_relay.bot.services.exceptions import SessionStateError
from luna_relay.bot.services.models import AuthorSummary
from luna_relay.bot.services.models import ChannelInfo
from luna_relay.bot.services.models import MessageContext
from luna_relay.bot.services.models import ResponseFlags
from luna_relay.bot.services.models import WorkflowResponse
from tests.bot.services.conftest import make_response
from tests.bot.services.conftest import queue_responses
from tests.bot.services.conftest import workflow_reply
from tests.mocks import CHANNEL_ID
from tests.mocks import MockDiscordMessage
from tests.mocks import MockLazyIterator


def make_context(channel_id: str = str(CHANNEL_ID)) -> MessageContext:
    return MessageContext(
        message_id="555555555",
        content="Hello LUNA",
        created_at="2025-05-01T12:00:00+00:00",
        author=AuthorSummary(id="111111111", username="testuser"),
        channel=ChannelInfo(id=channel_id, name="general"),
    )


def message_with_history(message: MockDiscordMessage, history: list) -> MockDiscordMessage:
    """Attach a recent-messages iterator to a message's REST app."""
    iterator = MockLazyIterator(history)
    message.app.rest.fetch_messages = Mock(return_value=iterator)
    message.history_iterator = iterator
    return message


class TestSendMessage:
    """Test the session lifecycle driven by send_message."""

    async def test_send_message_creates_session_then_posts_marker_and_text(
        self, workflow_client, mock_api_client
    ):
        queue_responses(
            mock_api_client,
            make_response({"session_id": "sess-1"}),
            make_response({"status": "processing", "messages": []}),
            make_response(workflow_reply(("user", "Hello LUNA"), ("assistant", "Hi there"))),
        )

        response = await workflow_client.send_message("Hello LUNA", make_context())

        calls = mock_api_client.post.call_args_list
        assert len(calls) == 3
        assert calls[0].args[0] == "/session"
        assert calls[1].args[0] == "/session/sess-1/message"
        assert calls[1].kwargs["json_data"] == {
            "message": "session_id:sess-1",
            "message_type": "system",
        }
        assert calls[2].args[0] == "/session/sess-1/message"
        assert calls[2].kwargs["json_data"] == {"message": "Hello LUNA"}

        assert isinstance(response, WorkflowResponse)
        assert response.status == "complete"
        assert response.messages[-1].content == "Hi there"

    async def test_session_creation_failure_sends_no_messages(
        self, workflow_client, mock_api_client
    ):
        queue_responses(
            mock_api_client,
            APIError("Internal Server Error", status_code=500),
        )

        with pytest.raises(SessionCreationError) as exc_info:
            await workflow_client.send_message("Hello", make_context())

        assert exc_info.value.status_code == 500
        assert "Internal Server Error" in str(exc_info.value)
        assert mock_api_client.post.call_count == 1

    async def test_user_message_failure_raises_message_send_error(
        self, workflow_client, mock_api_client
    ):
        queue_responses(
            mock_api_client,
            make_response({"session_id": "sess-1"}),
            make_response({}),
            APIError("Bad Gateway", status_code=502),
        )

        with pytest.raises(MessageSendError) as exc_info:
            await workflow_client.send_message("Hello", make_context())

        assert exc_info.value.status_code == 502
        assert mock_api_client.post.call_count == 3

    async def test_rejected_system_marker_does_not_abort(self, workflow_client, mock_api_client):
        queue_responses(
            mock_api_client,
            make_response({"session_id": "sess-1"}),
            APIError("Bad Request", status_code=400),
            make_response(workflow_reply(("assistant", "Still here"))),
        )

        response = await workflow_client.send_message("Hello", make_context())

        assert response.messages[0].content == "Still here"
        assert mock_api_client.post.call_count == 3

    async def test_network_failure_on_system_marker_aborts(self, workflow_client, mock_api_client):
        queue_responses(
            mock_api_client,
            make_response({"session_id": "sess-1"}),
            NetworkError("Connection failed: refused"),
        )

        with pytest.raises(MessageSendError):
            await workflow_client.send_message("Hello", make_context())

        assert mock_api_client.post.call_count == 2

    async def test_invalid_json_reply_raises_message_send_error(
        self, workflow_client, mock_api_client
    ):
        broken = make_response(None)
        broken.json.side_effect = ValueError("Expecting value")
        queue_responses(
            mock_api_client,
            make_response({"session_id": "sess-1"}),
            make_response({}),
            broken,
        )

        with pytest.raises(MessageSendError):
            await workflow_client.send_message("Hello", make_context())

    async def test_original_message_flags_are_merged_into_initial_data(
        self, workflow_client, mock_api_client
    ):
        message = message_with_history(
            MockDiscordMessage(id=555555555, reference_id=444444444),
            [MockDiscordMessage(id=666666666, reference_id=555555555)],
        )
        queue_responses(
            mock_api_client,
            make_response({"session_id": "sess-1"}),
            make_response({}),
            make_response(workflow_reply(("assistant", "ok"))),
        )

        await workflow_client.send_message("Hello", make_context(), message)

        initial_data = mock_api_client.post.call_args_list[0].kwargs["json_data"]["initial_data"]
        assert initial_data["is_reply"] is True
        assert initial_data["has_reply"] is True
        assert initial_data["reply_to"] == "444444444"

    async def test_send_message_updates_cached_session(self, workflow_client, mock_api_client):
        queue_responses(
            mock_api_client,
            make_response({"session_id": "sess-1"}),
            make_response({}),
            make_response(workflow_reply(("assistant", "first"), ("assistant", "last"),
                                         status="awaiting_input")),
        )

        await workflow_client.send_message("Hello", make_context())

        session = workflow_client.get_cached_session(str(CHANNEL_ID))
        assert session.session_id == "sess-1"
        assert session.status == "awaiting_input"
        assert session.last_message == "last"


class TestCreateSession:
    """Test session creation requests."""

    async def test_create_session_payload(self, workflow_client, mock_api_client):
        mock_api_client.post.return_value = make_response({"session_id": "sess-9"})
        context = make_context().with_response_flags(ResponseFlags(is_reply=True, reply_to="1"))

        session = await workflow_client.create_session(context)

        path = mock_api_client.post.call_args.args[0]
        payload = mock_api_client.post.call_args.kwargs["json_data"]
        assert path == "/session"
        assert payload["workflow_id"] == "discord-root"

        initial_data = payload["initial_data"]
        assert initial_data["channel_id"] == str(CHANNEL_ID)
        assert initial_data["root"] == "discord-root"
        assert initial_data["session_id"] is None
        assert initial_data["message"]["content"] == "Hello LUNA"
        assert initial_data["author"]["username"] == "testuser"
        assert initial_data["thread"] == []
        assert initial_data["is_reply"] is True

        assert session.session_id == "sess-9"
        assert session.channel_id == str(CHANNEL_ID)

    async def test_create_session_accepts_plain_mapping(self, workflow_client, mock_api_client):
        mock_api_client.post.return_value = make_response({"session_id": "sess-2"})

        await workflow_client.create_session({"channel_id": "777"})

        initial_data = mock_api_client.post.call_args.kwargs["json_data"]["initial_data"]
        assert initial_data["channel_id"] == "777"
        assert workflow_client.get_cached_session("777").session_id == "sess-2"

    async def test_create_session_without_session_id_fails(self, workflow_client, mock_api_client):
        mock_api_client.post.return_value = make_response({"status": "created"})

        with pytest.raises(SessionCreationError):
            await workflow_client.create_session(make_context())

    async def test_create_session_network_error(self, workflow_client, mock_api_client):
        mock_api_client.post.side_effect = NetworkError("Request timeout after 30.0s")

        with pytest.raises(SessionCreationError) as exc_info:
            await workflow_client.create_session(make_context())

        assert "timeout" in str(exc_info.value)


class TestCheckMessageResponses:
    """Test reply flag detection."""

    async def test_reply_message_flags(self, workflow_client):
        message = message_with_history(MockDiscordMessage(reference_id=444444444), [])

        flags = await workflow_client.check_message_responses(message)

        assert flags == ResponseFlags(is_reply=True, has_reply=False, reply_to="444444444")

    async def test_non_reply_message_flags(self, workflow_client):
        message = message_with_history(MockDiscordMessage(), [])

        flags = await workflow_client.check_message_responses(message)

        assert flags.is_reply is False
        assert flags.reply_to is None

    async def test_has_reply_when_recent_message_references_target(self, workflow_client):
        message = message_with_history(
            MockDiscordMessage(id=555555555),
            [
                MockDiscordMessage(id=600000001),
                MockDiscordMessage(id=600000002, reference_id=555555555),
            ],
        )

        flags = await workflow_client.check_message_responses(message)

        assert flags.has_reply is True
        assert message.history_iterator.limit_value == 20
        message.app.rest.fetch_messages.assert_called_once_with(CHANNEL_ID)

    async def test_no_reply_when_recent_messages_reference_others(self, workflow_client):
        message = message_with_history(
            MockDiscordMessage(id=555555555),
            [MockDiscordMessage(id=600000001, reference_id=123)],
        )

        flags = await workflow_client.check_message_responses(message)

        assert flags.has_reply is False

    async def test_fetch_error_yields_default_flags(self, workflow_client):
        message = MockDiscordMessage(reference_id=444444444)
        message.app.rest.fetch_messages = Mock(side_effect=RuntimeError("Missing Access"))

        flags = await workflow_client.check_message_responses(message)

        assert flags == ResponseFlags()


class TestSessionState:
    """Test session state lookups against the cache."""

    async def test_no_active_session(self, workflow_client):
        with pytest.raises(NoActiveSessionError):
            await workflow_client.get_session_state("404")

    async def test_session_state_after_creation(self, workflow_client, mock_api_client):
        mock_api_client.post.return_value = make_response({"session_id": "sess-3"})
        mock_api_client.get.return_value = make_response(
            workflow_reply(("assistant", "working on it"), status="awaiting_input")
        )
        await workflow_client.create_session(make_context())

        state = await workflow_client.get_session_state(str(CHANNEL_ID))

        mock_api_client.get.assert_called_once_with("/session/sess-3")
        assert state.status == "awaiting_input"
        session = workflow_client.get_cached_session(str(CHANNEL_ID))
        assert session.status == "awaiting_input"
        assert session.last_message == "working on it"

    async def test_session_state_http_failure(self, workflow_client, mock_api_client):
        mock_api_client.post.return_value = make_response({"session_id": "sess-3"})
        mock_api_client.get.side_effect = APIError("Not Found", status_code=404)
        await workflow_client.create_session(make_context())

        with pytest.raises(SessionStateError) as exc_info:
            await workflow_client.get_session_state(str(CHANNEL_ID))

        assert exc_info.value.status_code == 404


async def test_close_closes_api_client(workflow_client, mock_api_client):
    await workflow_client.close()

    mock_api_client.close.assert_awaited_once()
