"""Workflow client for relaying Discord messages to LUNA.

Every inbound Discord message gets a brand-new LUNA session:

1. the session is created with the message context as ``initial_data``;
2. a system message ``session_id:<id>`` is posted so workflow steps can
   resolve the session id (``@{SESSION_ID}.system_messages[0].content``);
3. the user's text is posted and the workflow's response is returned.

Context fields are available to workflow steps under
``@{SESSION_ID}.data.initial_data``, e.g. ``initial_data.channel_id``,
``initial_data.author.username``, ``initial_data.is_reply`` or
``initial_data.reply_to``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional, Union

import hikari

from luna_relay.bot.services.base import APIClientProtocol
from luna_relay.bot.services.base import BaseService
from luna_relay.bot.services.exceptions import APIError
from luna_relay.bot.services.exceptions import FetchError
from luna_relay.bot.services.exceptions import MessageSendError
from luna_relay.bot.services.exceptions import NetworkError
from luna_relay.bot.services.exceptions import NoActiveSessionError
from luna_relay.bot.services.exceptions import ServiceError
from luna_relay.bot.services.exceptions import SessionCreationError
from luna_relay.bot.services.exceptions import SessionStateError
from luna_relay.bot.services.models import MessageContext
from luna_relay.bot.services.models import ResponseFlags
from luna_relay.bot.services.models import Session
from luna_relay.bot.services.models import WorkflowResponse

logger = logging.getLogger(__name__)

SYSTEM_MESSAGE_TYPE = "system"
SESSION_MARKER_PREFIX = "session_id:"

InitialData = Union[MessageContext, Mapping[str, Any]]


class WorkflowClient(BaseService):
    """Client for the LUNA workflow session API.

    Holds the API base URL and workflow id for its whole lifetime, plus an
    in-memory map of the latest session created for each channel.
    """

    def __init__(
        self,
        api_client: APIClientProtocol,
        workflow_id: str,
        api_url: str,
        recent_message_limit: int = 20,
        fetch_timeout: Optional[float] = None
    ):
        """Initialize the workflow client.

        Args:
            api_client: HTTP client pointed at the LUNA API
            workflow_id: Workflow that new sessions are created for
            api_url: LUNA API base URL, reported in diagnostics
            recent_message_limit: Messages scanned when looking for replies
            fetch_timeout: Timeout in seconds for Discord fetches
        """
        super().__init__(api_client)
        self._workflow_id = workflow_id
        self._api_url = api_url
        self._recent_message_limit = recent_message_limit
        self._fetch_timeout = fetch_timeout
        self._sessions: Dict[str, Session] = {}

    @property
    def workflow_id(self) -> str:
        return self._workflow_id

    @property
    def api_url(self) -> str:
        return self._api_url

    async def send_message(
        self,
        text: str,
        context: Optional[InitialData] = None,
        original_message: Optional[hikari.Message] = None
    ) -> WorkflowResponse:
        """Relay a message to a fresh LUNA session.

        Args:
            text: Message content to send as the user turn
            context: Context snapshot used to seed the session
            original_message: Discord message to derive reply flags from

        Returns:
            WorkflowResponse: The workflow's answer to the user message

        Raises:
            SessionCreationError: If the session cannot be created
            MessageSendError: If the user message cannot be delivered
        """
        initial_data: InitialData = context if context is not None else {}

        if original_message is not None:
            flags = await self.check_message_responses(original_message)
            if isinstance(initial_data, MessageContext):
                initial_data = initial_data.with_response_flags(flags)
            else:
                initial_data = {**initial_data, **flags.to_dict()}

        session = await self.create_session(initial_data)

        await self._send_system_marker(session)

        response = await self._post_session_message(
            session,
            {"message": text},
        )

        if session.channel_id:
            self._sessions[session.channel_id] = session.with_state(response)

        self._log_operation(
            "send_message",
            session_id=session.session_id,
            status=response.status,
            message_count=len(response.messages),
        )
        return response

    async def create_session(self, initial_data: Optional[InitialData] = None) -> Session:
        """Create a LUNA session seeded with message context.

        Args:
            initial_data: Context snapshot or plain mapping

        Returns:
            Session: The newly created session

        Raises:
            SessionCreationError: If the API rejects the request or the
                response carries no session id
        """
        if isinstance(initial_data, MessageContext):
            data = initial_data.to_dict()
            channel_id: Optional[str] = initial_data.channel_id
        else:
            data = dict(initial_data or {})
            channel = data.get("channel")
            channel_id = channel.get("id") if isinstance(channel, Mapping) else None
            channel_id = channel_id or data.get("channel_id")

        payload = {
            "workflow_id": self._workflow_id,
            "initial_data": {
                **data,
                "channel_id": channel_id,
                "root": self._workflow_id,
                "session_id": None,  # assigned by the server
            },
        }

        try:
            response = await self._api_client.post("/session", json_data=payload)
            body = response.json()
        except APIError as e:
            self._log_error("create_session", e, channel_id=channel_id)
            raise SessionCreationError.from_error(e) from e
        except ValueError as e:
            self._log_error("create_session", e, channel_id=channel_id)
            raise SessionCreationError(
                f"Failed to create session: invalid JSON response ({e})"
            ) from e

        session_id = body.get("session_id") if isinstance(body, dict) else None
        if not session_id:
            raise SessionCreationError(
                "Failed to create session: response did not include a session_id",
                response_body=str(body),
            )

        session = Session(
            session_id=str(session_id),
            workflow_id=self._workflow_id,
            channel_id=str(channel_id) if channel_id else None,
            status=body.get("status"),
        )
        if session.channel_id:
            self._sessions[session.channel_id] = session

        self._log_operation("create_session", session_id=session.session_id, channel_id=channel_id)
        return session

    async def check_message_responses(self, message: hikari.Message) -> ResponseFlags:
        """Work out whether a message is a reply and whether it has replies.

        ``has_reply`` only considers the most recent messages in the channel.
        Never raises; any failure yields default (all false) flags.
        """
        try:
            is_reply = False
            reply_to = None

            reference = message.message_reference
            if reference is not None and reference.id is not None:
                is_reply = True
                reply_to = str(reference.id)

            has_reply = False
            recent_messages = await self._fetch_recent_messages(message)
            for recent in recent_messages:
                recent_reference = recent.message_reference
                if (
                    recent_reference is not None
                    and recent_reference.id is not None
                    and str(recent_reference.id) == str(message.id)
                ):
                    has_reply = True
                    break

            return ResponseFlags(is_reply=is_reply, has_reply=has_reply, reply_to=reply_to)

        except Exception as e:
            self._logger.error(f"Error checking message responses: {e}")
            return ResponseFlags()

    async def get_session_state(self, channel_id: str) -> WorkflowResponse:
        """Fetch the current server-side state of a channel's session.

        Raises:
            NoActiveSessionError: If no session is cached for the channel
            SessionStateError: If the API request fails
        """
        session = self._sessions.get(str(channel_id))
        if session is None:
            raise NoActiveSessionError(str(channel_id))

        try:
            response = await self._api_client.get(f"/session/{session.session_id}")
            state = WorkflowResponse.from_api(response.json())
        except APIError as e:
            self._log_error("get_session_state", e, session_id=session.session_id)
            raise SessionStateError.from_error(e) from e
        except (ValueError, ServiceError) as e:
            self._log_error("get_session_state", e, session_id=session.session_id)
            raise SessionStateError(f"Failed to get session state: {e}") from e

        self._sessions[str(channel_id)] = session.with_state(state)
        return state

    def get_cached_session(self, channel_id: str) -> Optional[Session]:
        """Return the latest session created for a channel, if any."""
        return self._sessions.get(str(channel_id))

    async def close(self) -> None:
        """Close the underlying API client."""
        await self.cleanup()

    async def _send_system_marker(self, session: Session) -> None:
        """Post the ``session_id:<id>`` system message.

        A rejected marker is logged and the relay carries on; a transport
        failure aborts the relay.
        """
        try:
            await self._api_client.post(
                f"/session/{session.session_id}/message",
                json_data={
                    "message": f"{SESSION_MARKER_PREFIX}{session.session_id}",
                    "message_type": SYSTEM_MESSAGE_TYPE,
                },
            )
        except NetworkError as e:
            self._log_error("send_system_marker", e, session_id=session.session_id)
            raise MessageSendError.from_error(e) from e
        except APIError as e:
            self._logger.warning(
                f"System marker rejected for session {session.session_id}: {e}"
            )

    async def _post_session_message(
        self,
        session: Session,
        body: Dict[str, Any]
    ) -> WorkflowResponse:
        try:
            response = await self._api_client.post(
                f"/session/{session.session_id}/message",
                json_data=body,
            )
            return WorkflowResponse.from_api(response.json())
        except APIError as e:
            self._log_error("send_message", e, session_id=session.session_id)
            raise MessageSendError.from_error(e) from e
        except (ValueError, ServiceError) as e:
            self._log_error("send_message", e, session_id=session.session_id)
            raise MessageSendError(f"Failed to send message: {e}") from e

    async def _fetch_recent_messages(self, message: hikari.Message) -> list:
        """Fetch the latest messages of the channel a message was posted in.

        Raises:
            FetchError: If Discord cannot be queried
        """

        async def collect() -> list:
            iterator = message.app.rest.fetch_messages(message.channel_id)
            return list(await iterator.limit(self._recent_message_limit))

        try:
            return await asyncio.wait_for(collect(), timeout=self._fetch_timeout)
        except Exception as e:
            raise FetchError(str(message.channel_id)) from e
