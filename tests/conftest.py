"""Pytest configuration and fixtures."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from verifybot.core.config import Settings
from verifybot.main import create_app
from verifybot.verification.manager import SessionManager
from verifybot.verification.matcher import SecretConfiguration, SecretMatcher
from tests.fakes import FakeChannel, FakeGateway, FakeSink, resolver_for

SECRET = "Code123"
USER_ID = 111111111111111111
OTHER_USER_ID = 222222222222222222
GUILD_ID = 333333333333333333
ROLE_ID = 444444444444444444
CLIENT_ID = "123456789012345678"
# base64("123456789012345678") + two opaque segments
VALID_TOKEN = "MTIzNDU2Nzg5MDEyMzQ1Njc4.GhJkLm.abcdefghijklmnopqrstuvwxyz_-0123"

TEST_ENV = {
    "DISCORD_TOKEN": VALID_TOKEN,
    "CLIENT_ID": CLIENT_ID,
    "GUILD_ID": str(GUILD_ID),
    "VERIFY_ROLE_ID": str(ROLE_ID),
    "VERIFY_CODE": SECRET,
    "ENVIRONMENT": "test",
}


@pytest.fixture
def settings() -> Settings:
    return Settings.from_env(TEST_ENV)


@pytest.fixture
def matcher() -> SecretMatcher:
    return SecretMatcher(SecretConfiguration(code=SECRET))


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


@pytest_asyncio.fixture
async def manager(gateway: FakeGateway, channel: FakeChannel, matcher: SecretMatcher):
    """Manager wired to fakes; running sessions are cancelled after each test."""
    manager = SessionManager(
        resolver_for(gateway),
        channel,
        matcher,
        timeout_seconds=180,
        max_attempts=3,
    )
    yield manager
    await manager.close()


class StubBot:
    """Just enough of VerifyBot for the HTTP surface."""

    def __init__(self, manager: SessionManager, ready: bool = True, latency: float = 0.042):
        self.manager = manager
        self.ready = ready
        self.latency = latency
        self.closed = False

    def is_ready(self) -> bool:
        return self.ready

    def is_closed(self) -> bool:
        return self.closed


@pytest_asyncio.fixture
async def client(settings: Settings, manager: SessionManager):
    """Create async test client around a stub bot; the real bot never connects."""
    bot = StubBot(manager)
    app = create_app(settings, bot=bot, start_bot=False)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        ac.bot = bot
        ac.manager = manager
        yield ac
