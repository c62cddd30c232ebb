"""Discord bot client setup and configuration."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import hikari
import lightbulb

from luna_relay.bot.services.api_client import APIClient
from luna_relay.bot.services.exceptions import LoginError
from luna_relay.bot.services.workflow_client import WorkflowClient
from luna_relay.bot.utils.messages import MessageContextBuilder
from luna_relay.shared.config import Settings
from luna_relay.shared.config import get_settings

logger = logging.getLogger(__name__)

PLUGINS = (
    "luna_relay.bot.plugins.relay",
)


def create_bot(settings: Optional[Settings] = None) -> lightbulb.BotApp:
    """Create and configure the Discord bot.

    Returns:
        BotApp instance
    """
    if settings is None:
        settings = get_settings()

    # Configure bot intents
    intents = (
        hikari.Intents.GUILDS
        | hikari.Intents.GUILD_MEMBERS  # For member nicknames and roles
        | hikari.Intents.GUILD_MESSAGES
        | hikari.Intents.DM_MESSAGES
        | hikari.Intents.MESSAGE_CONTENT
    )

    bot = lightbulb.BotApp(
        token=settings.discord_bot_token,
        intents=intents,
        logs={
            "version": 1,
            "incremental": True,
            "loggers": {
                "hikari": {"level": "INFO"},
                "lightbulb": {"level": "INFO"},
                "luna_relay": {"level": settings.log_level},
            },
        },
        banner=None,  # Disable banner for cleaner logs
    )

    return bot


async def setup_bot_services(bot: lightbulb.BotApp, settings: Settings) -> None:
    """Create the relay services and store them in bot data."""
    logger.info("Setting up bot services...")

    logger.info(f"Connecting to LUNA API at: {settings.luna_api_url}")
    api_client = APIClient(
        base_url=settings.luna_api_url,
        default_timeout=settings.luna_api_timeout,
    )

    workflow_client = WorkflowClient(
        api_client,
        workflow_id=settings.luna_workflow_id,
        api_url=settings.luna_api_url,
        recent_message_limit=settings.recent_message_scan_limit,
        fetch_timeout=settings.discord_fetch_timeout,
    )
    await workflow_client.initialize()

    context_builder = MessageContextBuilder(
        bot,
        max_reply_depth=settings.reply_chain_max_depth,
        fetch_timeout=settings.discord_fetch_timeout,
    )

    bot.d['settings'] = settings
    bot.d['api_client'] = api_client
    bot.d['workflow_client'] = workflow_client
    bot.d['context_builder'] = context_builder

    logger.info(f"✓ Bot services setup complete (workflow: {settings.luna_workflow_id})")


async def cleanup_bot_services(bot: lightbulb.BotApp) -> None:
    """Clean up bot services and connections."""
    logger.info("Cleaning up bot services...")

    try:
        workflow_client = bot.d.get('workflow_client')
        if workflow_client:
            await workflow_client.close()

        logger.info("Bot services cleanup complete")

    except Exception as e:
        logger.error(f"Error cleaning up bot services: {e}")


def load_plugins(bot: lightbulb.BotApp) -> None:
    """Load bot plugins."""
    for extension in PLUGINS:
        logger.info(f"Loading {extension}...")
        bot.load_extensions(extension)
        logger.info(f"✓ Loaded {extension}")


async def run_bot(settings: Optional[Settings] = None) -> None:
    """Run the Discord bot until it is stopped.

    Raises:
        LoginError: If the bot token is missing or rejected by Discord
    """
    if settings is None:
        settings = get_settings()

    if not settings.discord_bot_token:
        raise LoginError("Discord bot token not provided")

    bot = create_bot(settings)

    @bot.listen()
    async def on_started(event: hikari.StartedEvent) -> None:
        """Handle bot started event."""
        bot_user = bot.get_me()
        if bot_user:
            logger.info(f"Logged in as {bot_user.username}#{bot_user.discriminator}")
        logger.info(f"Bot is in {len(bot.cache.get_guilds_view())} servers")

    @bot.listen()
    async def on_stopping(event: hikari.StoppingEvent) -> None:
        """Handle bot stopping event."""
        logger.info("Bot is stopping...")
        await cleanup_bot_services(bot)

    await setup_bot_services(bot, settings)
    load_plugins(bot)

    try:
        await bot.start()
    except hikari.UnauthorizedError as e:
        await cleanup_bot_services(bot)
        raise LoginError(f"Failed to log in to Discord: {e}") from e

    logger.info("Bot is now running. Press Ctrl+C to stop.")

    try:
        await bot.join()
    except asyncio.CancelledError:
        logger.info("Bot shutdown requested")
    finally:
        logger.info("Shutting down bot...")
        if bot.is_alive:
            await bot.close()
