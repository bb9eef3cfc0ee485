"""DM channel adapter with push-based inbound subscriptions."""

from typing import Callable, Optional

import discord

from verifybot.bot.gateway import TRANSPORT_ERRORS
from verifybot.core.errors import DeliveryError
from verifybot.core.logging import get_logger
from verifybot.verification.ports import InboundMessage

logger = get_logger(__name__)


class DMSubscription:
    """Delivers accepted DM messages to a callback, up to an optional limit."""

    def __init__(
        self,
        router: "DiscordDMChannel",
        channel_id: int,
        predicate: Callable[[InboundMessage], bool],
        callback: Callable[[InboundMessage], None],
        limit: Optional[int] = None,
    ):
        self.router = router
        self.channel_id = channel_id
        self.predicate = predicate
        self.callback = callback
        self.limit = limit
        self.accepted = 0
        self.active = True

    def offer(self, message: InboundMessage) -> bool:
        """Deliver the message if it passes the predicate. Returns whether it was taken."""
        if not self.active or not self.predicate(message):
            return False
        self.accepted += 1
        self.callback(message)
        if self.limit is not None and self.accepted >= self.limit:
            self.cancel()
        return True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self.router.unsubscribe(self)


class DiscordDMChannel:
    """Opens DMs, sends text, and routes incoming DM messages to subscribers.

    The bot's ``on_message`` hands every DM to ``dispatch``.
    """

    def __init__(self, client: discord.Client):
        self.client = client
        self._subscriptions: dict[int, list[DMSubscription]] = {}

    async def open(self, user_id: int) -> discord.DMChannel:
        try:
            user = self.client.get_user(user_id) or await self.client.fetch_user(user_id)
            return await user.create_dm()
        except discord.HTTPException as exc:
            raise DeliveryError(
                "Could not open DM", details={"status": exc.status, "code": exc.code}
            ) from exc
        except TRANSPORT_ERRORS as exc:
            raise DeliveryError(
                "Could not open DM", details={"error": type(exc).__name__}
            ) from exc

    async def send(self, handle: discord.abc.Messageable, text: str) -> None:
        try:
            await handle.send(text)
        except discord.HTTPException as exc:
            # 50007: cannot send messages to this user (DMs closed / bot blocked)
            raise DeliveryError(
                "Could not send DM", details={"status": exc.status, "code": exc.code}
            ) from exc
        except TRANSPORT_ERRORS as exc:
            raise DeliveryError(
                "Could not send DM", details={"error": type(exc).__name__}
            ) from exc

    def on_message(
        self,
        handle: discord.DMChannel,
        predicate: Callable[[InboundMessage], bool],
        callback: Callable[[InboundMessage], None],
        limit: Optional[int] = None,
    ) -> DMSubscription:
        subscription = DMSubscription(self, handle.id, predicate, callback, limit)
        self._subscriptions.setdefault(handle.id, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: DMSubscription) -> None:
        subscribers = self._subscriptions.get(subscription.channel_id, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            self._subscriptions.pop(subscription.channel_id, None)

    def dispatch(self, message: discord.Message) -> int:
        """Hand a received message to the oldest subscriber of its channel that accepts it.

        A user has one DM channel no matter how many guilds they verify in, so
        one reply is only ever counted by one session.
        """
        inbound = InboundMessage(author_id=message.author.id, content=message.content or "")
        for subscription in list(self._subscriptions.get(message.channel.id, [])):
            if subscription.offer(inbound):
                return 1
        return 0

    def subscription_count(self) -> int:
        return sum(len(subs) for subs in self._subscriptions.values())
