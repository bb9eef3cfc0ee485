"""Discord bot: gateway connection, /verify and !verify, verify-channel cleanup.

Runs in the same event loop as the FastAPI health server. Both trigger
sources reduce to ``SessionManager.trigger``.
"""

import discord
from discord import Intents, app_commands
from discord.ext import commands

from verifybot.bot.channel import DiscordDMChannel
from verifybot.bot.gateway import DiscordPrivilegeGateway
from verifybot.bot.sinks import InteractionSink, MessageSink
from verifybot.core import messages
from verifybot.core.config import Settings
from verifybot.core.errors import AppError
from verifybot.core.logging import get_logger
from verifybot.verification.manager import SessionManager
from verifybot.verification.matcher import SecretConfiguration, SecretMatcher
from verifybot.verification.ports import AcknowledgmentSink

logger = get_logger(__name__)

VERIFY_COMMAND = "verify"
VERIFY_COMMAND_DESCRIPTION = "Start verification via DM"
TEXT_TRIGGER = "!verify"


def is_text_trigger(content: str | None) -> bool:
    return (content or "").strip().lower() == TEXT_TRIGGER


class VerifyBot(commands.Bot):
    """The verification bot."""

    def __init__(self, settings: Settings, manager: SessionManager | None = None) -> None:
        intents = Intents.default()
        intents.members = True  # fetch members, read roles and screening state
        intents.message_content = True  # read codes in DMs and !verify in the guild
        intents.dm_messages = True

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            application_id=settings.client_id,
            description="Grants the verified role after a DM code check.",
        )
        self.settings = settings
        self.dm_channel = DiscordDMChannel(self)
        self.manager = manager or SessionManager(
            self.resolve_gateway,
            self.dm_channel,
            SecretMatcher(SecretConfiguration(code=settings.verify_code)),
            timeout_seconds=settings.verify_timeout_seconds,
            max_attempts=settings.verify_max_attempts,
        )
        self._setup_commands()

    async def resolve_gateway(self, guild_id: int) -> DiscordPrivilegeGateway:
        return await DiscordPrivilegeGateway.resolve(self, guild_id, self.settings.verify_role_id)

    def _setup_commands(self) -> None:
        """Register the guild-scoped /verify command on the command tree."""

        @self.tree.command(
            name=VERIFY_COMMAND,
            description=VERIFY_COMMAND_DESCRIPTION,
            guild=discord.Object(id=self.settings.guild_id),
        )
        async def verify_command(interaction: discord.Interaction) -> None:
            await self.handle_verify_interaction(interaction)

        self.tree.error(self.on_app_command_error)

    def in_verify_channel(self, channel_id: int) -> bool:
        restricted = self.settings.verify_channel_id
        return restricted is None or channel_id == restricted

    async def handle_verify_interaction(self, interaction: discord.Interaction) -> None:
        if not self.in_verify_channel(interaction.channel_id):
            await interaction.response.send_message(
                messages.WRONG_CHANNEL.format(channel_id=self.settings.verify_channel_id),
                ephemeral=True,
            )
            return

        await self._trigger(
            interaction.user.id, interaction.guild_id, InteractionSink(interaction), "slash"
        )

    async def on_ready(self) -> None:
        logger.info("bot.ready", user=str(self.user), guilds=len(self.guilds))

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return

        # DMs may be answers to a running verification
        if message.guild is None:
            self.dm_channel.dispatch(message)
            return

        await self._clean_verify_channel(message)

        if not is_text_trigger(message.content):
            return
        if not self.in_verify_channel(message.channel.id):
            return

        await self._trigger(message.author.id, message.guild.id, MessageSink(message), "text")

    async def _clean_verify_channel(self, message: discord.Message) -> None:
        """Delete every new message posted in the verify channel, when allowed to."""
        restricted = self.settings.verify_channel_id
        if restricted is None or message.channel.id != restricted:
            return

        permissions = message.channel.permissions_for(message.guild.me)
        if not permissions.manage_messages:
            return

        try:
            await message.delete()
        except discord.HTTPException as exc:
            logger.debug("bot.cleanup_failed", message_id=str(message.id), error=str(exc))

    async def _trigger(
        self, user_id: int, guild_id: int, sink: AcknowledgmentSink, source: str
    ) -> None:
        try:
            result = await self.manager.trigger(user_id, guild_id, sink)
        except AppError as exc:
            # The sink already told the user; this is for operators
            logger.warning(
                "bot.trigger_failed",
                source=source,
                user_id=str(user_id),
                guild_id=str(guild_id),
                code=exc.code,
                error=exc.message,
            )
            return
        except Exception as exc:
            # The manager already replied with the generic error text
            logger.error(
                "bot.trigger_crashed",
                source=source,
                user_id=str(user_id),
                guild_id=str(guild_id),
                error=str(exc),
                exc_info=exc,
            )
            return

        logger.info(
            "bot.triggered",
            source=source,
            user_id=str(user_id),
            guild_id=str(guild_id),
            status=result.status.value,
        )

    async def on_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        logger.error("bot.command_error", command=VERIFY_COMMAND, error=str(error), exc_info=error)
        sink = InteractionSink(interaction)
        if interaction.response.is_done():
            await sink.follow_up(messages.UNEXPECTED)
        else:
            await sink.acknowledge(messages.UNEXPECTED)

    async def close(self) -> None:
        await self.manager.close()
        await super().close()
