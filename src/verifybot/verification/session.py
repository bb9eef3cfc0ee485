"""Per-user verification session: the challenge/response state machine.

Lifecycle::

    CREATED ─┬─> ALREADY_PRIVILEGED
             ├─> BLOCKED                    (guild/role missing, no permission, bad role order)
             └─> PROMPTING ─┬─> ABORTED     (DM could not be opened / prompt not delivered)
                            └─> AWAITING_RESPONSE ─┬─> (wrong code, attempts left) AWAITING_RESPONSE
                                                   ├─> EXPIRED (timeout | attempts exhausted)
                                                   └─> VERIFYING ─> GRANTED | GRANT_FAILED

Inbound messages and the deadline both land on one queue consumed by a
single driver task (``run``), so at most one transition is in flight and
whichever event is dequeued first decides the outcome.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from verifybot.core import messages
from verifybot.core.errors import (
    CannotOpenChannelError,
    DeliveryError,
    GatewayError,
    MissingPermissionError,
    RoleOrderTooHighError,
    VerificationError,
)
from verifybot.core.logging import get_logger, set_verification_id
from verifybot.models.enums import BlockReason, SessionState, TerminalReason
from verifybot.models.schemas import SessionOutcome, SessionRead
from verifybot.verification.matcher import SecretMatcher
from verifybot.verification.ports import (
    Channel,
    GatewayResolver,
    InboundMessage,
    PrivilegeGateway,
    Subscription,
)
from verifybot.verification.timer import DeadlineTimer

logger = get_logger(__name__)


@dataclass(frozen=True)
class MessageReceived:
    content: str


@dataclass(frozen=True)
class DeadlineReached:
    pass


SessionEvent = Union[MessageReceived, DeadlineReached]


class VerificationSession:
    """One user's verification attempt in one guild."""

    def __init__(
        self,
        user_id: int,
        guild_id: int,
        resolve_gateway: GatewayResolver,
        channel: Channel,
        matcher: SecretMatcher,
        *,
        timeout_seconds: float,
        max_attempts: int,
        inbound_limit: Optional[int] = None,
        on_terminated: Optional[Callable[["VerificationSession"], None]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.id = uuid.uuid4()
        self.user_id = user_id
        self.guild_id = guild_id
        self.state = SessionState.CREATED
        self.attempts_remaining = max_attempts
        self.inbound_limit = inbound_limit or max_attempts
        self.messages_accepted = 0
        self.timeout_seconds = timeout_seconds
        self.outcome: Optional[SessionOutcome] = None
        self.handle: Any = None
        self.gateway: Optional[PrivilegeGateway] = None

        self._resolve_gateway = resolve_gateway
        self._channel = channel
        self._matcher = matcher
        self._on_terminated = on_terminated
        self._events: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._timer = DeadlineTimer(lambda: self.post(DeadlineReached()))
        self._subscription: Optional[Subscription] = None
        self._released = False
        self.log = logger.bind(
            verification_id=str(self.id), user_id=str(user_id), guild_id=str(guild_id)
        )

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def deadline(self) -> Optional[float]:
        """Absolute deadline on the event loop clock, once the prompt is out."""
        return self._timer.deadline

    def snapshot(self) -> SessionRead:
        return SessionRead(
            id=self.id,
            user_id=str(self.user_id),
            guild_id=str(self.guild_id),
            state=self.state,
            attempts_remaining=self.attempts_remaining,
            seconds_remaining=self._timer.remaining(),
        )

    # Start-up (driven by SessionManager.trigger)

    async def check(self) -> SessionState:
        """
        Run the start guards.

        Returns ALREADY_PRIVILEGED (terminal, nothing else to do) or CREATED
        (caller proceeds to ``open``).

        Raises:
            VerificationError: Guild/role missing, or the bot cannot grant the role
            GatewayError: The platform failed while checking
        """
        self._require(SessionState.CREATED)
        try:
            self.gateway = await self._resolve_gateway(self.guild_id)
            if await self.gateway.has_privilege(self.user_id):
                self._finish(SessionState.ALREADY_PRIVILEGED, TerminalReason.ALREADY_PRIVILEGED)
                return self.state
            check = await self.gateway.can_grant()
        except VerificationError as exc:
            self._finish(SessionState.BLOCKED, TerminalReason.MISCONFIGURED, detail=exc.code)
            raise
        except GatewayError as exc:
            self._finish(SessionState.BLOCKED, TerminalReason.GATEWAY_ERROR, detail=exc.code)
            raise

        if not check.allowed:
            if check.reason == BlockReason.ROLE_ORDER_TOO_HIGH:
                self._finish(SessionState.BLOCKED, TerminalReason.ROLE_ORDER_TOO_HIGH)
                raise RoleOrderTooHighError()
            self._finish(SessionState.BLOCKED, TerminalReason.MISSING_PERMISSION)
            raise MissingPermissionError()

        return self.state

    async def open(self) -> SessionState:
        """
        Open the DM, send the prompt, then arm the deadline and subscribe.

        The deadline counts from the moment the prompt was delivered.

        Raises:
            CannotOpenChannelError: DM refused or prompt undeliverable
        """
        self._require(SessionState.CREATED)
        self._transition(SessionState.PROMPTING)
        try:
            self.handle = await self._channel.open(self.user_id)
            await self._channel.send(
                self.handle, messages.PROMPT.format(seconds=int(self.timeout_seconds))
            )
        except DeliveryError as exc:
            self._finish(SessionState.ABORTED, TerminalReason.CHANNEL_UNAVAILABLE)
            raise CannotOpenChannelError(self.user_id, details={"error": exc.message}) from exc

        self._timer.start(self.timeout_seconds)
        self._subscription = self._channel.on_message(
            self.handle, self._accepts, self._on_inbound, limit=self.inbound_limit
        )
        self._transition(SessionState.AWAITING_RESPONSE)
        return self.state

    def abandon(self) -> None:
        """Release everything without notifying the user (startup failure, shutdown)."""
        if not self.is_terminal:
            self._finish(SessionState.ABORTED, TerminalReason.CANCELLED)

    # Event intake

    def post(self, event: SessionEvent) -> None:
        """Queue an event for the driver; dropped once the session is terminal."""
        if self.is_terminal:
            self.log.debug("session.event_dropped", event_type=type(event).__name__)
            return
        self._events.put_nowait(event)

    def _accepts(self, message: InboundMessage) -> bool:
        return message.author_id == self.user_id and not self._matcher.is_empty(message.content)

    def _on_inbound(self, message: InboundMessage) -> None:
        self.post(MessageReceived(content=message.content))

    # Driver

    async def run(self) -> Optional[SessionOutcome]:
        """Consume events in order until a terminal state is reached."""
        set_verification_id(str(self.id))
        try:
            while not self.is_terminal:
                event = await self._events.get()
                await self.handle_event(event)
        except (asyncio.CancelledError, Exception):
            # Cancelled at shutdown or a gateway adapter blew up mid-transition
            self.abandon()
            raise
        return self.outcome

    async def handle_event(self, event: SessionEvent) -> None:
        if self.is_terminal:
            # Lost a race against an earlier event
            return

        if isinstance(event, DeadlineReached):
            await self._expire(TerminalReason.TIMEOUT)
            return

        await self._on_candidate(event.content)

    async def _on_candidate(self, content: str) -> None:
        if self._matcher.is_empty(content):
            return

        self.messages_accepted += 1
        if self._matcher.matches(content):
            await self._verify()
            return

        self.attempts_remaining = max(0, self.attempts_remaining - 1)
        self.log.info("session.wrong_code", attempts_remaining=self.attempts_remaining)
        if self.attempts_remaining > 0 and self.messages_accepted < self.inbound_limit:
            await self._notify(messages.WRONG_CODE.format(remaining=self.attempts_remaining))
            return

        await self._expire(TerminalReason.ATTEMPTS_EXHAUSTED)

    async def _verify(self) -> None:
        self._transition(SessionState.VERIFYING)
        try:
            if await self.gateway.is_pending_admission(self.user_id):
                self._finish(SessionState.GRANT_FAILED, TerminalReason.PENDING_SCREENING)
                await self._notify(messages.PENDING_SCREENING)
                return

            await self.gateway.grant_privilege(self.user_id)
            # The grant call's answer is not trusted; only a re-read counts.
            confirmed = await self.gateway.has_privilege(self.user_id)
        except GatewayError as exc:
            self.log.error("session.grant_error", code=exc.code, error=exc.message)
            self._finish(SessionState.GRANT_FAILED, TerminalReason.GATEWAY_ERROR, detail=exc.code)
            await self._notify(messages.GRANT_ERROR.format(code=exc.code))
            return

        if confirmed:
            self._finish(SessionState.GRANTED, TerminalReason.VERIFIED)
            await self._notify(messages.GRANTED)
        else:
            self.log.warning("session.grant_not_applied")
            self._finish(SessionState.GRANT_FAILED, TerminalReason.NOT_APPLIED)
            await self._notify(messages.NOT_APPLIED)

    async def _expire(self, reason: TerminalReason) -> None:
        self._finish(SessionState.EXPIRED, reason)
        if reason == TerminalReason.ATTEMPTS_EXHAUSTED:
            await self._notify(messages.ATTEMPTS_EXHAUSTED)
        else:
            await self._notify(messages.TIMED_OUT)

    async def _notify(self, text: str) -> None:
        """Best-effort DM; the user may have closed DMs since the prompt."""
        try:
            await self._channel.send(self.handle, text)
        except DeliveryError as exc:
            self.log.warning("session.notice_failed", state=self.state.value, error=exc.message)

    # State bookkeeping

    def _require(self, state: SessionState) -> None:
        if self.state != state:
            raise RuntimeError(f"Session is {self.state.value}, expected {state.value}")

    def _transition(self, state: SessionState) -> None:
        self.log.debug("session.transition", from_state=self.state.value, to_state=state.value)
        self.state = state

    def _finish(
        self, state: SessionState, reason: TerminalReason, detail: Optional[str] = None
    ) -> None:
        """Enter a terminal state exactly once and release resources synchronously."""
        if self.is_terminal:
            return
        self.state = state
        self.outcome = SessionOutcome(state=state, reason=reason, detail=detail)
        self.log.info(
            "session.terminated",
            state=state.value,
            reason=reason.value,
            detail=detail,
            attempts_remaining=self.attempts_remaining,
        )
        self._release()

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        self._timer.cancel()
        if self._subscription is not None:
            self._subscription.cancel()
        if self._on_terminated is not None:
            self._on_terminated(self)
