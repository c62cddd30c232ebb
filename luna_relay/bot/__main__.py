"""Entry point for running the Discord bot."""

import asyncio
import logging
import sys

from luna_relay.bot.client import run_bot
from luna_relay.bot.services.exceptions import LoginError

logger = logging.getLogger("luna_relay.bot")


def main() -> None:
    try:
        asyncio.run(run_bot())
    except LoginError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.critical(f"{e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Bot shutdown requested via keyboard interrupt")


if __name__ == "__main__":
    main()
