"""Session registry and the single trigger entry point.

Every trigger source (slash command, text command) reduces to
``trigger(user_id, guild_id, sink)``.

Registry reads and writes never span an ``await``: the key is reserved by
inserting the new session before any I/O, and removal happens synchronously
from the session's terminal transition. All of it runs on the one event
loop, so check-then-insert and check-then-remove are atomic with respect to
concurrent triggers for the same user.
"""

import asyncio
from typing import Optional

from verifybot.core import messages
from verifybot.core.errors import AppError, CannotOpenChannelError
from verifybot.core.logging import get_logger
from verifybot.models.enums import SessionState, TriggerStatus
from verifybot.models.schemas import TriggerResult
from verifybot.verification.matcher import SecretMatcher
from verifybot.verification.ports import AcknowledgmentSink, Channel, GatewayResolver
from verifybot.verification.session import VerificationSession

logger = get_logger(__name__)

SessionKey = tuple[int, int]


class SessionManager:
    """Tracks at most one live verification session per (user, guild)."""

    def __init__(
        self,
        resolve_gateway: GatewayResolver,
        channel: Channel,
        matcher: SecretMatcher,
        *,
        timeout_seconds: float = 180,
        max_attempts: int = 3,
        inbound_limit: Optional[int] = None,
    ):
        self._resolve_gateway = resolve_gateway
        self._channel = channel
        self._matcher = matcher
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.inbound_limit = inbound_limit
        self._sessions: dict[SessionKey, VerificationSession] = {}
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, user_id: int, guild_id: int) -> Optional[VerificationSession]:
        return self._sessions.get((user_id, guild_id))

    def live_sessions(self) -> list[VerificationSession]:
        return list(self._sessions.values())

    async def trigger(
        self, user_id: int, guild_id: int, sink: AcknowledgmentSink
    ) -> TriggerResult:
        """
        Start a verification for a user, or explain why not.

        Acknowledges through ``sink`` exactly once; uses ``follow_up`` only
        when the DM cannot be opened. Returns as soon as the prompt is out,
        the session then runs in its own task.

        Raises:
            VerificationError: Guild/role missing, permission or role order
                problem, or DM unavailable. No session stays registered.
            GatewayError: The platform failed during the start guards.

        Anything else is reported to the user as an unexpected error and
        re-raised, with the reservation released.
        """
        key = (user_id, guild_id)
        existing = self._sessions.get(key)
        if existing is not None:
            logger.info(
                "trigger.in_progress",
                user_id=str(user_id),
                guild_id=str(guild_id),
                verification_id=str(existing.id),
            )
            await sink.acknowledge(messages.IN_PROGRESS)
            return TriggerResult(status=TriggerStatus.ALREADY_IN_PROGRESS, session_id=existing.id)

        session = VerificationSession(
            user_id,
            guild_id,
            self._resolve_gateway,
            self._channel,
            self._matcher,
            timeout_seconds=self.timeout_seconds,
            max_attempts=self.max_attempts,
            inbound_limit=self.inbound_limit,
            on_terminated=self.on_session_terminated,
        )
        self._sessions[key] = session

        try:
            state = await self._start(session, sink)
        except asyncio.CancelledError:
            session.abandon()
            raise
        except AppError:
            # Already reported to the user; normally already terminal and unregistered
            session.abandon()
            raise
        except Exception as exc:
            prompted = session.state != SessionState.CREATED
            session.abandon()
            logger.error(
                "trigger.crashed",
                user_id=str(user_id),
                guild_id=str(guild_id),
                error=str(exc),
                exc_info=exc,
            )
            # "Check your DMs" already went out once the DM was being opened
            reply = sink.follow_up if prompted else sink.acknowledge
            await reply(messages.UNEXPECTED)
            raise

        if state == SessionState.ALREADY_PRIVILEGED:
            return TriggerResult(status=TriggerStatus.ALREADY_PRIVILEGED, session_id=session.id)

        task = asyncio.create_task(session.run(), name=f"verification-{session.id}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        logger.info(
            "trigger.started",
            user_id=str(user_id),
            guild_id=str(guild_id),
            verification_id=str(session.id),
        )
        return TriggerResult(status=TriggerStatus.STARTED, session_id=session.id)

    async def _start(self, session: VerificationSession, sink: AcknowledgmentSink) -> SessionState:
        try:
            state = await session.check()
        except AppError as exc:
            logger.warning(
                "trigger.rejected",
                user_id=str(session.user_id),
                guild_id=str(session.guild_id),
                code=exc.code,
            )
            await sink.acknowledge(messages.describe_error(exc))
            raise

        if state == SessionState.ALREADY_PRIVILEGED:
            await sink.acknowledge(messages.ALREADY_VERIFIED)
            return state

        await sink.acknowledge(messages.CHECK_DMS)
        try:
            return await session.open()
        except CannotOpenChannelError as exc:
            logger.warning(
                "trigger.dm_failed",
                user_id=str(session.user_id),
                guild_id=str(session.guild_id),
                error=exc.details.get("error"),
            )
            await sink.follow_up(messages.describe_error(exc))
            raise

    def on_session_terminated(self, session: VerificationSession) -> None:
        """Unregister a session. Only removes the entry if it is this exact session."""
        key = (session.user_id, session.guild_id)
        if self._sessions.get(key) is session:
            del self._sessions[key]

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "session.crashed",
                task=task.get_name(),
                error=str(exc),
                exc_info=exc,
            )

    async def join(self) -> None:
        """Wait until every running session has reached a terminal state."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel running sessions at process shutdown."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for session in self.live_sessions():
            session.abandon()
