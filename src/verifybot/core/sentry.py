"""Sentry error tracking configuration and initialization."""

from typing import Iterable

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.utils import BadDsn

from verifybot.core.config import Settings
from verifybot.core.logging import get_logger

logger = get_logger(__name__)

REDACTED = "[redacted]"

# Guard against multiple initializations
_sentry_initialized = False


def init_sentry(settings: Settings) -> bool:
    """
    Initialize Sentry SDK for error tracking.

    Only initializes if a DSN is configured and looks valid. Events are
    scrubbed of the verification code and bot token before sending.
    Returns whether Sentry is active.
    """
    global _sentry_initialized

    if _sentry_initialized:
        return True

    sentry_dsn = (settings.sentry_dsn or "").strip()
    if not sentry_dsn:
        logger.info("sentry.disabled", message="Sentry DSN not found, error tracking disabled")
        return False

    # Catches placeholder values like "xxx" that might be set in CI
    if not sentry_dsn.startswith(("https://", "http://")):
        logger.info(
            "sentry.disabled",
            message="Sentry DSN appears to be invalid or placeholder, error tracking disabled",
            dsn_preview=sentry_dsn[:20] + "..." if len(sentry_dsn) > 20 else sentry_dsn,
        )
        return False

    secrets = [
        settings.verify_code.get_secret_value(),
        settings.discord_token.get_secret_value(),
    ]

    try:
        sentry_sdk.init(
            dsn=sentry_dsn,
            environment=settings.environment,
            traces_sample_rate=0.0,
            send_default_pii=False,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                LoggingIntegration(level=None, event_level=None),  # Don't duplicate logs
            ],
            before_send=lambda event, hint: scrub_secrets(event, secrets),
        )
    except BadDsn as exc:
        logger.warning(
            "sentry.init_failed",
            message="Failed to initialize Sentry due to invalid DSN, error tracking disabled",
            error=str(exc),
        )
        return False

    _sentry_initialized = True
    logger.info(
        "sentry.initialized",
        message="Sentry error tracking enabled",
        environment=settings.environment,
    )
    return True


def scrub_secrets(event: dict, secrets: Iterable[str]) -> dict:
    """
    Replace every occurrence of a secret anywhere in a Sentry event.

    Walks nested dicts/lists; matching is case-insensitive since users type
    the code in any case.
    """
    needles = [s.strip().lower() for s in secrets if s and s.strip()]
    if not needles:
        return event
    return _scrub(event, needles)


def _scrub(value, needles: list[str]):
    if isinstance(value, dict):
        return {key: _scrub(item, needles) for key, item in value.items()}
    if isinstance(value, list):
        return [_scrub(item, needles) for item in value]
    if isinstance(value, tuple):
        return tuple(_scrub(item, needles) for item in value)
    if isinstance(value, str):
        lowered = value.lower()
        for needle in needles:
            start = lowered.find(needle)
            while start != -1:
                value = value[:start] + REDACTED + value[start + len(needle):]
                lowered = value.lower()
                start = lowered.find(needle, start + len(REDACTED))
        return value
    return value
