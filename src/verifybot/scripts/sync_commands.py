# File: src/verifybot/scripts/sync_commands.py
"""Script to register the /verify slash command for the configured guild."""

import asyncio
import sys

import discord

from verifybot.core.config import Settings
from verifybot.core.errors import ConfigurationError
from verifybot.core.logging import configure_logging, get_logger
from verifybot.core.validators import validate_bot_token

configure_logging()
logger = get_logger(__name__)


async def sync_commands(settings: Settings) -> int:
    """Log in over REST only, push the guild command set, log out."""
    from verifybot.bot.client import VerifyBot

    token = validate_bot_token(settings.discord_token.get_secret_value(), settings.client_id)
    bot = VerifyBot(settings)
    guild = discord.Object(id=settings.guild_id)

    async with bot:
        await bot.login(token)
        logger.info("commands.syncing", guild_id=str(settings.guild_id))
        synced = await bot.tree.sync(guild=guild)

    logger.info("commands.synced", guild_id=str(settings.guild_id), count=len(synced))
    return len(synced)


def main() -> None:
    try:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        asyncio.run(sync_commands(settings))
    except ConfigurationError as exc:
        logger.error("commands.config_error", code=exc.code, error=exc.message, details=exc.details)
        sys.exit(1)
    except discord.HTTPException as exc:
        logger.error("commands.sync_failed", status=exc.status, error=str(exc))
        sys.exit(1)


if __name__ == "__main__":
    main()
