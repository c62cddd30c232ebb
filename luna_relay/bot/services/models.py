"""Service layer models for the relay bot.

This module defines immutable dataclasses for the context snapshot sent to
the LUNA API and for the workflow responses that come back. ``to_dict``
methods render the wire shape that LUNA workflows resolve variables against,
so their key names must not change.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from datetime import datetime
from datetime import timezone
from typing import Any

from luna_relay.bot.services.exceptions import ValidationError


STATUS_COMPLETE = "complete"
STATUS_AWAITING_INPUT = "awaiting_input"
REPLYABLE_STATUSES = frozenset({STATUS_COMPLETE, STATUS_AWAITING_INPUT})

ROLE_ASSISTANT = "assistant"


@dataclass(frozen=True)
class AuthorSummary:
    """Author fields shared by the inbound message and its ancestors."""

    id: str
    username: str
    discriminator: str | None = None
    global_name: str | None = None
    is_bot: bool = False
    avatar_hash: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "discriminator": self.discriminator,
            "globalName": self.global_name,
            "bot": self.is_bot,
            "avatar": self.avatar_hash,
        }


@dataclass(frozen=True)
class ThreadEntry:
    """Reduced view of one message in a reply chain."""

    id: str
    content: str
    created_at: str
    author: AuthorSummary

    def to_dict(self) -> dict[str, Any]:
        author = self.author.to_dict()
        author.pop("avatar")
        return {
            "id": self.id,
            "content": self.content,
            "createdAt": self.created_at,
            "author": author,
        }


@dataclass(frozen=True)
class MessageReferenceInfo:
    """Identifiers of the message being replied to."""

    message_id: str | None = None
    channel_id: str | None = None
    guild_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "messageId": self.message_id,
            "channelId": self.channel_id,
            "guildId": self.guild_id,
        }


@dataclass(frozen=True)
class AttachmentInfo:
    id: str
    name: str
    url: str
    content_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "contentType": self.content_type,
        }


@dataclass(frozen=True)
class RoleInfo:
    id: str
    name: str
    color: int = 0
    position: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "position": self.position,
        }


@dataclass(frozen=True)
class MemberInfo:
    """Guild membership of the message author."""

    id: str
    display_name: str
    nickname: str | None = None
    roles: tuple[RoleInfo, ...] = ()
    joined_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "nickname": self.nickname,
            "roles": [role.to_dict() for role in self.roles],
            "joinedAt": self.joined_at,
            "displayName": self.display_name,
        }


@dataclass(frozen=True)
class ChannelInfo:
    id: str
    name: str | None = None
    type: int | None = None
    topic: str | None = None
    nsfw: bool | None = None
    parent_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "topic": self.topic,
            "nsfw": self.nsfw,
            "parentId": self.parent_id,
        }


@dataclass(frozen=True)
class GuildInfo:
    id: str
    name: str
    icon_url: str | None = None
    member_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "iconURL": self.icon_url,
            "memberCount": self.member_count,
        }


@dataclass(frozen=True)
class ResponseFlags:
    """Reply relationships of a message within its channel."""

    is_reply: bool = False
    has_reply: bool = False
    reply_to: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_reply": self.is_reply,
            "has_reply": self.has_reply,
            "reply_to": self.reply_to,
        }


@dataclass(frozen=True)
class MessageContext:
    """Immutable snapshot of one inbound Discord message.

    Built once per message by the context builder and handed to the
    workflow client, which seeds a new LUNA session with ``to_dict()``.
    """

    message_id: str
    content: str
    created_at: str
    author: AuthorSummary
    channel: ChannelInfo
    reference: MessageReferenceInfo | None = None
    attachments: tuple[AttachmentInfo, ...] = ()
    member: MemberInfo | None = None
    guild: GuildInfo | None = None
    thread: tuple[ThreadEntry, ...] = ()
    response_flags: ResponseFlags | None = None

    def __post_init__(self):
        """Validate context identifiers."""
        if not self.message_id.strip():
            raise ValidationError("message_id", "Message ID is required")
        if not self.channel.id.strip():
            raise ValidationError("channel_id", "Channel ID is required")

    @property
    def channel_id(self) -> str:
        return self.channel.id

    @property
    def guild_id(self) -> str | None:
        return self.guild.id if self.guild else None

    def with_response_flags(self, flags: ResponseFlags) -> MessageContext:
        """Return a copy of this context carrying the given reply flags."""
        return replace(self, response_flags=flags)

    def to_dict(self) -> dict[str, Any]:
        """Render the context in the shape LUNA workflows expect."""
        data: dict[str, Any] = {
            "message": {
                "id": self.message_id,
                "content": self.content,
                "createdAt": self.created_at,
                "reference": self.reference.to_dict() if self.reference else None,
                "attachments": [attachment.to_dict() for attachment in self.attachments],
            },
            "author": self.author.to_dict(),
            "member": self.member.to_dict() if self.member else None,
            "channel": self.channel.to_dict(),
            "guild": self.guild.to_dict() if self.guild else None,
            "thread": [entry.to_dict() for entry in self.thread],
        }
        if self.response_flags is not None:
            data.update(self.response_flags.to_dict())
        return data


@dataclass(frozen=True)
class WorkflowMessage:
    role: str
    content: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> WorkflowMessage:
        content = data.get("content")
        return cls(
            role=str(data.get("role", "")),
            content=content if isinstance(content, str) else ("" if content is None else str(content)),
        )


@dataclass(frozen=True)
class WorkflowResponse:
    """Decoded body of a LUNA message or session-state response."""

    status: str
    messages: tuple[WorkflowMessage, ...] = ()
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> WorkflowResponse:
        """Build a response from a JSON body, tolerating missing fields."""
        if not isinstance(data, dict):
            raise ValidationError("response", "Workflow response must be a JSON object")
        messages = data.get("messages") or []
        return cls(
            status=str(data.get("status", "")),
            messages=tuple(
                WorkflowMessage.from_api(message)
                for message in messages
                if isinstance(message, dict)
            ),
            raw=data,
        )

    @property
    def is_replyable(self) -> bool:
        """Whether the dispatcher should relay an assistant message."""
        return self.status in REPLYABLE_STATUSES

    @property
    def assistant_messages(self) -> list[WorkflowMessage]:
        return [message for message in self.messages if message.role == ROLE_ASSISTANT]

    @property
    def last_message_content(self) -> str | None:
        if not self.messages:
            return None
        return self.messages[-1].content or None


@dataclass(frozen=True)
class Session:
    """Client-side record of a LUNA session.

    The server owns the session state; this copy only tracks what the
    most recent response reported.
    """

    session_id: str
    workflow_id: str
    channel_id: str | None = None
    status: str | None = None
    last_message: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.session_id.strip():
            raise ValidationError("session_id", "Session ID is required")

    def with_state(self, response: WorkflowResponse) -> Session:
        """Return a copy updated with the status and last message of a response."""
        return replace(
            self,
            status=response.status,
            last_message=response.last_message_content,
        )
