"""Relay plugin forwarding Discord messages to the LUNA workflow API.

Every non-bot message is packaged with its context, sent to a fresh LUNA
session, and the workflow's latest assistant message is posted back as a
reply.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from typing import Optional

import hikari
import lightbulb

from luna_relay.bot.services.models import WorkflowResponse
from luna_relay.bot.services.workflow_client import WorkflowClient
from luna_relay.bot.utils.messages import MessageContextBuilder
from luna_relay.shared.config import Settings

logger = logging.getLogger(__name__)

# Create plugin
plugin = lightbulb.Plugin("relay")


def select_reply_content(response: WorkflowResponse) -> Optional[str]:
    """Pick the text to relay from a workflow response.

    Only finished or input-awaiting workflows produce a reply, and only the
    last assistant message is relayed.

    Returns:
        Reply content, or None when there is nothing to post
    """
    if not response.is_replyable:
        return None

    assistant_messages = response.assistant_messages
    if not assistant_messages:
        return None

    return assistant_messages[-1].content or None


def format_connection_error(api_url: str, error: Exception) -> str:
    """Format the diagnostic posted for debug-triggered failures."""
    return (
        "⚠️ **LUNA API Connection Error**\n"
        "Could not connect to LUNA API server.\n"
        f"Please make sure it's running at {api_url}\n\n"
        f"Error: {error}"
    )


async def relay_message(
    message: hikari.Message,
    context_builder: MessageContextBuilder,
    workflow_client: WorkflowClient,
    settings: Settings,
    bot: Optional[hikari.GatewayBot] = None
) -> Optional[str]:
    """Relay one Discord message through LUNA and reply with the result.

    Args:
        message: Inbound Discord message
        context_builder: Builds the context snapshot for the message
        workflow_client: Client for the LUNA API
        settings: Relay settings (debug prefix)
        bot: Bot used to show a typing indicator, if available

    Returns:
        The content posted as a reply, if any
    """
    content = message.content or ""

    try:
        context = await context_builder.build_context(message)

        try:
            logger.info(f"Processing message in channel: {message.channel_id}")

            async with AsyncExitStack() as stack:
                if bot is not None:
                    await _enter_typing(stack, bot, message.channel_id)

                response = await workflow_client.send_message(content, context, message)

            reply_content = select_reply_content(response)
            if reply_content is None:
                logger.debug(
                    f"No reply for message {message.id} (status={response.status}, "
                    f"messages={len(response.messages)})"
                )
                return None

            await message.respond(reply_content, reply=True, mentions_reply=False)
            logger.info(f"Relayed LUNA response to message {message.id} ({len(reply_content)} chars)")
            return reply_content

        except Exception as e:
            logger.error(f"Error sending message to LUNA: {e}", exc_info=True)

            if content.startswith(settings.debug_trigger_prefix):
                diagnostic = format_connection_error(workflow_client.api_url, e)
                await message.respond(diagnostic, reply=True, mentions_reply=False)
                return diagnostic

    except Exception as e:
        logger.error(f"Error processing message: {e}", exc_info=True)

    return None


async def _enter_typing(
    stack: AsyncExitStack,
    bot: hikari.GatewayBot,
    channel_id: hikari.Snowflake
) -> None:
    """Keep the typing indicator up until ``stack`` closes."""
    try:
        await stack.enter_async_context(bot.rest.trigger_typing(channel_id))
    except Exception as e:
        logger.debug(f"Could not trigger typing in channel {channel_id}: {e}")


@plugin.listener(hikari.MessageCreateEvent)
async def on_message_create(event: hikari.MessageCreateEvent) -> None:
    """Relay every human-authored message to LUNA."""
    # Ignore messages from bots (including self)
    if event.is_bot:
        return

    services = getattr(plugin.bot, "d", {})
    context_builder = services.get("context_builder")
    workflow_client = services.get("workflow_client")
    settings = services.get("settings")

    if not context_builder or not workflow_client or not settings:
        logger.warning("Relay services not available, ignoring message")
        return

    await relay_message(
        event.message,
        context_builder,
        workflow_client,
        settings,
        bot=plugin.bot,
    )


def load(bot: lightbulb.BotApp) -> None:
    """Load the relay plugin."""
    bot.add_plugin(plugin)
    logger.info("Relay plugin loaded")


def unload(bot: lightbulb.BotApp) -> None:
    """Unload the relay plugin."""
    bot.remove_plugin(plugin)
    logger.info("Relay plugin unloaded")
