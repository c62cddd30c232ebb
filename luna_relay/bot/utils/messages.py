"""Message context assembly for relayed Discord messages.

Turns a hikari message into the immutable ``MessageContext`` snapshot that
seeds a LUNA session, including the reply chain the message sits at the end
of. Discord lookups that fail only drop the affected fields; building a
context never fails because of them.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, List, Optional

import hikari

from luna_relay.bot.services.exceptions import FetchError
from luna_relay.bot.services.models import AttachmentInfo
from luna_relay.bot.services.models import AuthorSummary
from luna_relay.bot.services.models import ChannelInfo
from luna_relay.bot.services.models import GuildInfo
from luna_relay.bot.services.models import MemberInfo
from luna_relay.bot.services.models import MessageContext
from luna_relay.bot.services.models import MessageReferenceInfo
from luna_relay.bot.services.models import RoleInfo
from luna_relay.bot.services.models import ThreadEntry

logger = logging.getLogger(__name__)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _snowflake(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def build_author_summary(user: hikari.User) -> AuthorSummary:
    """Extract the author fields the LUNA workflows use."""
    return AuthorSummary(
        id=str(user.id),
        username=user.username,
        discriminator=getattr(user, "discriminator", None),
        global_name=getattr(user, "global_name", None),
        is_bot=bool(getattr(user, "is_bot", False)),
        avatar_hash=getattr(user, "avatar_hash", None),
    )


def build_thread_entry(message: hikari.Message) -> ThreadEntry:
    """Reduce an ancestor message to a thread entry."""
    return ThreadEntry(
        id=str(message.id),
        content=message.content or "",
        created_at=_isoformat(message.timestamp) or "",
        author=build_author_summary(message.author),
    )


class MessageContextBuilder:
    """Builds context snapshots for inbound messages.

    Args:
        bot: Discord bot used for cache lookups and REST fetches
        max_reply_depth: Maximum reply hops to follow; 0 means unlimited
        fetch_timeout: Timeout in seconds for each Discord fetch
    """

    def __init__(
        self,
        bot: hikari.GatewayBot,
        max_reply_depth: int = 50,
        fetch_timeout: Optional[float] = None
    ):
        self.bot = bot
        self.max_reply_depth = max_reply_depth
        self.fetch_timeout = fetch_timeout

    async def build_context(self, message: hikari.Message) -> MessageContext:
        """Assemble the full context for a message.

        Args:
            message: The inbound Discord message

        Returns:
            MessageContext with reply chain, channel and guild details
        """
        thread = await self.resolve_reply_chain(message)
        channel = await self._build_channel_info(message.channel_id)
        guild = await self._build_guild_info(message.guild_id) if message.guild_id else None

        return MessageContext(
            message_id=str(message.id),
            content=message.content or "",
            created_at=_isoformat(message.timestamp) or "",
            reference=self._build_reference_info(message.message_reference),
            attachments=tuple(self._build_attachment_info(a) for a in message.attachments),
            author=build_author_summary(message.author),
            member=self._build_member_info(message.member),
            channel=channel,
            guild=guild,
            thread=tuple(thread),
        )

    async def resolve_reply_chain(self, message: hikari.Message) -> List[ThreadEntry]:
        """Walk reply references back to the root of the conversation.

        Each hop fetches the referenced message from the channel of the
        message that references it. The walk stops at the first message
        without a reference, at the first failed fetch, at the depth cap,
        or when a message id repeats.

        Returns:
            Thread entries ordered oldest first
        """
        thread: List[ThreadEntry] = []
        seen = {str(message.id)}
        current = message

        while True:
            reference = current.message_reference
            if reference is None or reference.id is None:
                break

            if self.max_reply_depth and len(thread) >= self.max_reply_depth:
                logger.warning(
                    f"Reply chain for message {message.id} truncated at {self.max_reply_depth} messages"
                )
                break

            if str(reference.id) in seen:
                logger.warning(f"Reply chain for message {message.id} loops back to {reference.id}")
                break

            try:
                replied_to = await self._fetch_message(current.channel_id, reference.id)
            except FetchError as e:
                logger.error(f"Error fetching reply chain message: {e} ({e.__cause__!r})")
                break

            thread.insert(0, build_thread_entry(replied_to))
            seen.add(str(replied_to.id))
            current = replied_to

        return thread

    async def _fetch_message(
        self,
        channel_id: hikari.Snowflakeish,
        message_id: hikari.Snowflakeish
    ) -> hikari.Message:
        """Fetch one message, raising FetchError on any failure."""
        try:
            return await self._with_timeout(self.bot.rest.fetch_message(channel_id, message_id))
        except Exception as e:
            raise FetchError(str(channel_id), str(message_id)) from e

    async def _with_timeout(self, awaitable: Awaitable[Any]) -> Any:
        return await asyncio.wait_for(awaitable, timeout=self.fetch_timeout)

    def _build_reference_info(
        self,
        reference: Optional[hikari.MessageReference]
    ) -> Optional[MessageReferenceInfo]:
        if reference is None:
            return None
        return MessageReferenceInfo(
            message_id=_snowflake(reference.id),
            channel_id=_snowflake(reference.channel_id),
            guild_id=_snowflake(reference.guild_id),
        )

    def _build_attachment_info(self, attachment: hikari.Attachment) -> AttachmentInfo:
        return AttachmentInfo(
            id=str(attachment.id),
            name=attachment.filename,
            url=attachment.url,
            content_type=getattr(attachment, "media_type", None),
        )

    def _build_member_info(self, member: Optional[hikari.Member]) -> Optional[MemberInfo]:
        if member is None:
            return None

        roles: List[RoleInfo] = []
        try:
            for role in member.get_roles():
                roles.append(RoleInfo(
                    id=str(role.id),
                    name=role.name,
                    color=int(role.color),
                    position=role.position,
                ))
        except Exception as e:
            # Role objects are only available from the cache
            logger.debug(f"Could not resolve roles for member {member.id}: {e}")

        return MemberInfo(
            id=str(member.id),
            display_name=member.display_name,
            nickname=member.nickname,
            roles=tuple(roles),
            joined_at=_isoformat(member.joined_at),
        )

    async def _build_channel_info(self, channel_id: hikari.Snowflake) -> ChannelInfo:
        """Describe the channel, preferring the cache over a REST fetch."""
        channel = None
        try:
            channel = self.bot.cache.get_guild_channel(channel_id)
            if channel is None:
                channel = await self._with_timeout(self.bot.rest.fetch_channel(channel_id))
        except Exception as e:
            logger.debug(f"Failed to fetch channel {channel_id}: {e}")

        if channel is None:
            return ChannelInfo(id=str(channel_id))

        channel_type = getattr(channel, "type", None)
        return ChannelInfo(
            id=str(channel.id),
            name=getattr(channel, "name", None),
            type=int(channel_type) if channel_type is not None else None,
            topic=getattr(channel, "topic", None),
            nsfw=getattr(channel, "is_nsfw", None),
            parent_id=_snowflake(getattr(channel, "parent_id", None)),
        )

    async def _build_guild_info(self, guild_id: hikari.Snowflake) -> Optional[GuildInfo]:
        """Describe the guild, preferring the cache over a REST fetch."""
        guild = None
        try:
            guild = self.bot.cache.get_guild(guild_id)
            if guild is None:
                guild = await self._with_timeout(self.bot.rest.fetch_guild(guild_id))
        except Exception as e:
            logger.debug(f"Failed to fetch guild {guild_id}: {e}")

        if guild is None:
            return None

        member_count = getattr(guild, "member_count", None)
        if member_count is None:
            member_count = getattr(guild, "approximate_member_count", None)

        icon_url = getattr(guild, "icon_url", None)
        return GuildInfo(
            id=str(guild.id),
            name=guild.name,
            icon_url=str(icon_url) if icon_url else None,
            member_count=member_count,
        )
