"""
Port interfaces - Protocol definitions for platform abstraction.

The verification core only talks to the platform through these. The
Discord adapters in ``verifybot.bot`` implement them; tests use in-memory
fakes.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, NamedTuple, Optional, Protocol

from verifybot.models.enums import BlockReason


@dataclass(frozen=True)
class InboundMessage:
    """A message received on a verification channel."""

    author_id: int
    content: str


class GrantCheck(NamedTuple):
    """Result of ``PrivilegeGateway.can_grant``."""

    allowed: bool
    reason: Optional[BlockReason] = None


class PrivilegeGateway(Protocol):
    """Role operations for one guild and one verify role.

    Every method may raise ``GatewayError`` on transport or permission
    failure; that is distinct from a ``False`` answer.
    """

    async def has_privilege(self, user_id: int) -> bool:
        """Whether the member currently holds the verify role."""
        ...

    async def grant_privilege(self, user_id: int) -> bool:
        """Add the verify role. Callers must re-read, not trust the result."""
        ...

    async def can_grant(self) -> GrantCheck:
        """Check the bot's permission and role ordering."""
        ...

    async def is_pending_admission(self, user_id: int) -> bool:
        """Whether the member has not passed membership screening yet."""
        ...


# Resolves the gateway for a guild; raises GuildNotFoundError / RoleNotFoundError.
GatewayResolver = Callable[[int], Awaitable[PrivilegeGateway]]


class Subscription(Protocol):
    """Handle for an inbound-message subscription."""

    def cancel(self) -> None:
        """Stop delivery. Calling twice is a no-op."""
        ...


class Channel(Protocol):
    """Private text channel to a user.

    ``open`` and ``send`` raise ``DeliveryError`` when the platform refuses.
    """

    async def open(self, user_id: int) -> Any:
        ...

    async def send(self, handle: Any, text: str) -> None:
        ...

    def on_message(
        self,
        handle: Any,
        predicate: Callable[[InboundMessage], bool],
        callback: Callable[[InboundMessage], None],
        limit: Optional[int] = None,
    ) -> Subscription:
        """Push each accepted message to ``callback``, at most ``limit`` of them."""
        ...


class AcknowledgmentSink(Protocol):
    """Reply path back to whoever triggered the verification.

    Receives exactly one ``acknowledge`` and optionally one ``follow_up``.
    """

    async def acknowledge(self, text: str) -> None:
        ...

    async def follow_up(self, text: str) -> None:
        ...
