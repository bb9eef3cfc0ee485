"""Reusable validation utilities for settings and tokens."""

import base64
import binascii
import re

from verifybot.core.errors import InvalidTokenError

TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+$")


def validate_snowflake(value: int | str, field_name: str = "ID") -> int:
    """
    Validate a Discord snowflake ID.

    Args:
        value: Raw ID (usually a string from the environment)
        field_name: Name for error messages

    Returns:
        The ID as a positive int

    Raises:
        ValueError: If value is empty, not numeric, or not positive
    """
    raw = str(value).strip()
    if not raw:
        raise ValueError(f"{field_name} cannot be empty")

    if not raw.isdigit():
        raise ValueError(f"{field_name} must be numeric, got {raw[:20]!r}")

    snowflake = int(raw)
    if snowflake <= 0:
        raise ValueError(f"{field_name} must be positive")

    return snowflake


def token_sanity(token: str) -> dict[str, int | bool]:
    """Summarize a token for logging without revealing it."""
    return {
        "has_token": bool(token.strip()),
        "token_len": len(token.strip()),
        "has_newline": "\r" in token or "\n" in token,
    }


def decode_token_owner(token: str) -> str:
    """
    Decode the application ID embedded in the first token segment.

    Raises:
        InvalidTokenError: If the segment is not valid base64 / UTF-8
    """
    first = token.split(".", 1)[0]
    # Tokens drop base64 padding
    padded = first + "=" * (-len(first) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise InvalidTokenError("Could not decode bot token") from e


def validate_bot_token(token: str, client_id: int | str) -> str:
    """
    Validate bot token format and that it belongs to the configured application.

    Args:
        token: Raw token (surrounding whitespace is tolerated)
        client_id: Expected application ID

    Returns:
        The stripped token

    Raises:
        InvalidTokenError: If the token is empty, malformed, or for another app
    """
    stripped = token.strip()

    if not TOKEN_PATTERN.match(stripped):
        raise InvalidTokenError("DISCORD_TOKEN is empty or not in the expected format")

    owner = decode_token_owner(stripped)
    if owner != str(client_id):
        raise InvalidTokenError(
            "DISCORD_TOKEN does not belong to CLIENT_ID",
            details={"client_id": str(client_id)},
        )

    return stripped
