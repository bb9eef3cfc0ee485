# File: src/verifybot/main.py
"""FastAPI application factory running the verification bot in its lifespan."""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI

from verifybot.core.config import Settings
from verifybot.core.logging import configure_logging, get_logger
from verifybot.core.validators import token_sanity, validate_bot_token

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the bot on the server's event loop; close it on shutdown."""
    start_time = datetime.now()
    logger.info("app.startup", message="verifybot starting up", timestamp=start_time.isoformat())

    from verifybot.api.health import set_app_start_time

    set_app_start_time(start_time)

    bot_task: Optional[asyncio.Task] = None
    if app.state.start_bot:
        bot = app.state.bot
        bot_task = asyncio.create_task(bot.start(app.state.token), name="discord-bot")
        bot_task.add_done_callback(_bot_stopped)

    yield

    logger.info("app.shutdown", message="verifybot shutting down gracefully")
    if bot_task is not None:
        await app.state.bot.close()
        bot_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await bot_task


def _bot_stopped(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("bot.crashed", error=str(exc), exc_info=exc)


def _register_routers(app: FastAPI) -> None:
    """Register all API routers."""
    from verifybot.api.health import router as health_router
    from verifybot.api.sessions import router as sessions_router

    app.include_router(health_router)
    app.include_router(sessions_router)


def create_app(
    settings: Optional[Settings] = None,
    bot=None,
    *,
    start_bot: bool = True,
) -> FastAPI:
    """
    Application factory for verifybot.

    Validates the bot token before anything connects; a token that is
    malformed or belongs to another application aborts startup.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    token = settings.discord_token.get_secret_value()
    logger.info("app.token_sanity", **token_sanity(token))
    token = validate_bot_token(token, settings.client_id)

    from verifybot.core.sentry import init_sentry

    init_sentry(settings)

    if bot is None:
        from verifybot.bot.client import VerifyBot

        bot = VerifyBot(settings)

    app = FastAPI(
        title="verifybot",
        description="Discord role verification bot",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.bot = bot
    app.state.manager = bot.manager
    app.state.token = token
    app.state.start_bot = start_bot

    from verifybot.core.exception_handlers import register_exception_handlers

    register_exception_handlers(app)
    _register_routers(app)

    logger.info("app.configured", message="FastAPI application created successfully")

    return app


def run() -> None:
    """Production entrypoint: health server plus bot in one process."""
    settings = Settings.from_env()
    uvicorn.run(
        "verifybot.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
    )
