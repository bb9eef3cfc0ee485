"""Reply paths for the two trigger sources."""

import discord

from verifybot.core.logging import get_logger

logger = get_logger(__name__)

# Channel replies to !verify are cleaned up so the verify channel stays empty
CHANNEL_REPLY_TTL_SECONDS = 10


class InteractionSink:
    """Ephemeral replies to a /verify interaction."""

    def __init__(self, interaction: discord.Interaction):
        self.interaction = interaction

    async def acknowledge(self, text: str) -> None:
        try:
            await self.interaction.response.send_message(text, ephemeral=True)
        except discord.HTTPException as exc:
            # Interaction token expired or already answered
            logger.warning("sink.acknowledge_failed", source="slash", error=str(exc))

    async def follow_up(self, text: str) -> None:
        try:
            await self.interaction.followup.send(text, ephemeral=True)
        except discord.HTTPException as exc:
            logger.warning("sink.follow_up_failed", source="slash", error=str(exc))


class MessageSink:
    """Replies to a !verify text command.

    Replies are left in the channel for a few seconds, mentioning the
    author; if the bot cannot post there they go to the author's DMs.
    """

    def __init__(self, message: discord.Message):
        self.message = message

    async def acknowledge(self, text: str) -> None:
        await self._deliver(text)

    async def follow_up(self, text: str) -> None:
        await self._deliver(text)

    async def _deliver(self, text: str) -> None:
        try:
            await self.message.channel.send(
                f"{self.message.author.mention} {text}",
                delete_after=CHANNEL_REPLY_TTL_SECONDS,
            )
            return
        except discord.HTTPException as exc:
            logger.debug("sink.channel_reply_failed", source="text", error=str(exc))

        try:
            dm = await self.message.author.create_dm()
            await dm.send(text)
        except discord.HTTPException as exc:
            logger.warning("sink.reply_failed", source="text", error=str(exc))
