"""Tests for the session registry and trigger entry point."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from verifybot.core import messages
from verifybot.core.errors import (
    CannotOpenChannelError,
    GatewayError,
    GuildNotFoundError,
    MissingPermissionError,
    RoleNotFoundError,
    RoleOrderTooHighError,
)
from verifybot.models.enums import BlockReason, SessionState, TerminalReason, TriggerStatus
from verifybot.verification.manager import SessionManager
from tests.conftest import GUILD_ID, OTHER_USER_ID, SECRET, USER_ID
from tests.fakes import FakeChannel, FakeGateway, FakeSink, resolver_for, resolver_raising


async def finish(manager: SessionManager, timeout: float = 2) -> None:
    await asyncio.wait_for(manager.join(), timeout)


def make_manager(gateway, channel, matcher, **kwargs) -> SessionManager:
    options = {"timeout_seconds": 180, "max_attempts": 3}
    options.update(kwargs)
    return SessionManager(resolver_for(gateway), channel, matcher, **options)


class TestTriggerStart:
    """Test what trigger returns and acknowledges."""

    @pytest.mark.asyncio
    async def test_trigger_starts_session(self, manager, channel, sink):
        """Test a fresh user gets a prompt and a short acknowledgment."""
        result = await manager.trigger(USER_ID, GUILD_ID, sink)

        assert result.status == TriggerStatus.STARTED
        assert sink.acknowledgments == [messages.CHECK_DMS]
        assert sink.follow_ups == []
        session = manager.get(USER_ID, GUILD_ID)
        assert session.id == result.session_id
        assert session.state == SessionState.AWAITING_RESPONSE
        assert channel.texts_to(USER_ID) == [messages.PROMPT.format(seconds=180)]

    @pytest.mark.asyncio
    async def test_privileged_user_is_not_prompted(self, manager, gateway, channel, sink):
        """Test already-privileged users: no DM, no grant, nothing registered."""
        gateway.privileged.add(USER_ID)

        result = await manager.trigger(USER_ID, GUILD_ID, sink)

        assert result.status == TriggerStatus.ALREADY_PRIVILEGED
        assert sink.acknowledgments == [messages.ALREADY_VERIFIED]
        assert channel.opened == []
        assert gateway.grant_calls == []
        assert len(manager) == 0

    @pytest.mark.asyncio
    async def test_second_trigger_is_rejected(self, manager, channel, sink):
        """Test exclusivity: the live session is left untouched."""
        first = await manager.trigger(USER_ID, GUILD_ID, sink)
        session = manager.get(USER_ID, GUILD_ID)
        attempts_before = session.attempts_remaining

        second_sink = FakeSink()
        second = await manager.trigger(USER_ID, GUILD_ID, second_sink)

        assert second.status == TriggerStatus.ALREADY_IN_PROGRESS
        assert second.session_id == first.session_id
        assert second_sink.acknowledgments == [messages.IN_PROGRESS]
        assert manager.get(USER_ID, GUILD_ID) is session
        assert session.state == SessionState.AWAITING_RESPONSE
        assert session.attempts_remaining == attempts_before
        assert len(channel.opened) == 1

    @pytest.mark.asyncio
    async def test_concurrent_triggers_start_one_session(self, channel, matcher):
        """Test the key is reserved before any await."""
        gateway = FakeGateway(delay=0.01)
        manager = make_manager(gateway, channel, matcher)

        results = await asyncio.gather(
            manager.trigger(USER_ID, GUILD_ID, FakeSink()),
            manager.trigger(USER_ID, GUILD_ID, FakeSink()),
        )

        statuses = sorted(r.status.value for r in results)
        assert statuses == [TriggerStatus.ALREADY_IN_PROGRESS.value, TriggerStatus.STARTED.value]
        assert len(manager) == 1
        assert channel.opened == [USER_ID]
        await manager.close()

    @pytest.mark.asyncio
    async def test_sessions_are_independent_per_user(self, manager, channel):
        """Test two users verify side by side."""
        await manager.trigger(USER_ID, GUILD_ID, FakeSink())
        await manager.trigger(OTHER_USER_ID, GUILD_ID, FakeSink())

        assert len(manager) == 2
        channel.deliver(OTHER_USER_ID, SECRET)
        channel.deliver(USER_ID, "wrong")

        await asyncio.sleep(0.01)

        assert manager.get(OTHER_USER_ID, GUILD_ID) is None
        assert manager.get(USER_ID, GUILD_ID).attempts_remaining == 2


class TestTriggerFailures:
    """Test failures surface to the caller and leave nothing registered."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exc",
        [GuildNotFoundError(GUILD_ID), RoleNotFoundError(444)],
    )
    async def test_configuration_errors(self, channel, matcher, sink, exc):
        """Test unresolvable guild or role."""
        manager = SessionManager(resolver_raising(exc), channel, matcher)

        with pytest.raises(type(exc)):
            await manager.trigger(USER_ID, GUILD_ID, sink)

        assert len(manager) == 0
        assert sink.acknowledgments == [messages.describe_error(exc)]
        assert channel.opened == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reason, error_type",
        [
            (BlockReason.MISSING_PERMISSION, MissingPermissionError),
            (BlockReason.ROLE_ORDER_TOO_HIGH, RoleOrderTooHighError),
        ],
    )
    async def test_permission_errors(self, channel, matcher, sink, reason, error_type):
        """Test the bot cannot grant the role."""
        gateway = FakeGateway(allowed=False, block_reason=reason)
        manager = make_manager(gateway, channel, matcher)

        with pytest.raises(error_type):
            await manager.trigger(USER_ID, GUILD_ID, sink)

        assert len(manager) == 0
        assert len(sink.acknowledgments) == 1
        assert channel.opened == []

    @pytest.mark.asyncio
    async def test_gateway_error_on_guard(self, channel, matcher, sink):
        """Test a transport failure is reported with its code."""
        gateway = FakeGateway(check_error=GatewayError("Bad gateway", code="HTTP_502"))
        manager = make_manager(gateway, channel, matcher)

        with pytest.raises(GatewayError):
            await manager.trigger(USER_ID, GUILD_ID, sink)

        assert len(manager) == 0
        assert sink.acknowledgments == [messages.GUARD_ERROR.format(code="HTTP_502")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", ["fail_open", "fail_send"])
    async def test_dm_unavailable(self, gateway, matcher, sink, failure):
        """Test closed DMs use the deferred follow-up and register nothing."""
        channel = FakeChannel(**{failure: True})
        manager = make_manager(gateway, channel, matcher)

        with pytest.raises(CannotOpenChannelError):
            await manager.trigger(USER_ID, GUILD_ID, sink)

        assert sink.acknowledgments == [messages.CHECK_DMS]
        assert sink.follow_ups == [messages.DM_FAILED]
        assert len(manager) == 0

    @pytest.mark.asyncio
    async def test_can_retrigger_after_failure(self, gateway, matcher, sink):
        """Test a failed start doesn't leave the user locked out."""
        channel = FakeChannel(fail_open=True)
        manager = make_manager(gateway, channel, matcher)
        with pytest.raises(CannotOpenChannelError):
            await manager.trigger(USER_ID, GUILD_ID, sink)

        channel.fail_open = False
        result = await manager.trigger(USER_ID, GUILD_ID, FakeSink())

        assert result.status == TriggerStatus.STARTED
        await manager.close()

    @pytest.mark.asyncio
    async def test_unexpected_error_during_guards(self, channel, matcher, sink):
        """Test a crash while resolving the guild is acknowledged and releases the user."""
        manager = SessionManager(
            resolver_raising(RuntimeError("resolver bug")), channel, matcher, max_attempts=3
        )

        with pytest.raises(RuntimeError):
            await manager.trigger(USER_ID, GUILD_ID, sink)

        assert len(manager) == 0
        assert sink.acknowledgments == [messages.UNEXPECTED]
        assert sink.follow_ups == []

    @pytest.mark.asyncio
    async def test_unexpected_error_while_opening_dm(self, gateway, channel, matcher, sink):
        """Test a crash after "check your DMs" is reported through the follow-up."""
        channel.open = AsyncMock(side_effect=RuntimeError("channel bug"))
        manager = make_manager(gateway, channel, matcher)

        with pytest.raises(RuntimeError):
            await manager.trigger(USER_ID, GUILD_ID, sink)

        assert len(manager) == 0
        assert sink.acknowledgments == [messages.CHECK_DMS]
        assert sink.follow_ups == [messages.UNEXPECTED]

        del channel.open
        result = await manager.trigger(USER_ID, GUILD_ID, FakeSink())
        assert result.status == TriggerStatus.STARTED
        await manager.close()


class TestSessionLifecycle:
    """Test end-to-end outcomes through the manager."""

    @pytest.mark.asyncio
    async def test_grant_then_retrigger_is_idempotent(self, manager, gateway, channel):
        """Test GRANTED once, then ALREADY_PRIVILEGED with no second grant."""
        await manager.trigger(USER_ID, GUILD_ID, FakeSink())
        session = manager.get(USER_ID, GUILD_ID)
        channel.deliver(USER_ID, " CODE123 ")
        await finish(manager)

        assert session.outcome.state == SessionState.GRANTED
        assert channel.texts_to(USER_ID).count(messages.GRANTED) == 1
        assert len(manager) == 0

        again = FakeSink()
        result = await manager.trigger(USER_ID, GUILD_ID, again)

        assert result.status == TriggerStatus.ALREADY_PRIVILEGED
        assert again.acknowledgments == [messages.ALREADY_VERIFIED]
        assert gateway.grant_calls == [USER_ID]

    @pytest.mark.asyncio
    async def test_timeout_unregisters(self, gateway, channel, matcher):
        """Test expiry frees the user for a new trigger."""
        manager = make_manager(gateway, channel, matcher, timeout_seconds=0.05)
        await manager.trigger(USER_ID, GUILD_ID, FakeSink())
        session = manager.get(USER_ID, GUILD_ID)

        await finish(manager)

        assert session.outcome.reason == TerminalReason.TIMEOUT
        assert manager.get(USER_ID, GUILD_ID) is None

    @pytest.mark.asyncio
    async def test_exhaustion_unregisters(self, manager, channel):
        """Test three wrong codes end the session and free the key."""
        await manager.trigger(USER_ID, GUILD_ID, FakeSink())
        session = manager.get(USER_ID, GUILD_ID)
        for guess in ("x", "y", "z"):
            channel.deliver(USER_ID, guess)

        await finish(manager)

        assert session.outcome.reason == TerminalReason.ATTEMPTS_EXHAUSTED
        assert len(manager) == 0

    @pytest.mark.asyncio
    async def test_secret_never_sent(self, manager, channel, sink):
        """Test no outgoing text contains the configured code."""
        await manager.trigger(USER_ID, GUILD_ID, sink)
        for guess in ("a", "b", "c"):
            channel.deliver(USER_ID, guess)
        await finish(manager)

        outgoing = [text for _, text in channel.sent] + sink.acknowledgments + sink.follow_ups
        assert all(SECRET.lower() not in text.lower() for text in outgoing)


class TestRegistryRemoval:
    """Test removal is by identity, not just by key."""

    @pytest.mark.asyncio
    async def test_stale_session_does_not_remove_newer(self, manager, channel):
        """Test a late termination callback leaves the newer session registered."""
        await manager.trigger(USER_ID, GUILD_ID, FakeSink())
        old = manager.get(USER_ID, GUILD_ID)
        channel.deliver(USER_ID, SECRET)
        await finish(manager)

        # Fresh role state so the same user can start a newer session
        manager._resolve_gateway = resolver_for(FakeGateway())
        await manager.trigger(USER_ID, GUILD_ID, FakeSink())
        newer = manager.get(USER_ID, GUILD_ID)

        manager.on_session_terminated(old)
        manager.on_session_terminated(old)

        assert newer is not old
        assert manager.get(USER_ID, GUILD_ID) is newer
