"""Environment-driven settings, read once at startup."""

import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from verifybot.core.errors import ConfigurationError
from verifybot.core.validators import validate_snowflake

DEFAULT_TIMEOUT_SECONDS = 180
DEFAULT_MAX_ATTEMPTS = 3


class Settings(BaseModel):
    """Process configuration. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    discord_token: SecretStr
    client_id: int
    guild_id: int
    verify_role_id: int
    verify_code: SecretStr
    verify_channel_id: Optional[int] = Field(
        None, description="Restrict /verify and !verify to this channel"
    )
    verify_timeout_seconds: float = Field(DEFAULT_TIMEOUT_SECONDS, gt=0)
    verify_max_attempts: int = Field(DEFAULT_MAX_ATTEMPTS, ge=1)
    environment: str = "development"
    sentry_dsn: Optional[str] = None
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = Field(8000, gt=0, lt=65536)

    @field_validator("client_id", "guild_id", "verify_role_id", mode="before")
    @classmethod
    def validate_ids(cls, v, info):
        """Parse snowflake IDs from their string form."""
        return validate_snowflake(v, info.field_name.upper())

    @field_validator("verify_channel_id", mode="before")
    @classmethod
    def validate_channel_id(cls, v):
        """Empty channel ID means no channel restriction."""
        if v is None or str(v).strip() == "":
            return None
        return validate_snowflake(v, "CHANNEL_ID_VERIFY")

    @field_validator("verify_code")
    @classmethod
    def validate_code(cls, v: SecretStr) -> SecretStr:
        """Reject a code that normalizes to nothing."""
        if not v.get_secret_value().strip():
            raise ValueError("VERIFY_CODE cannot be empty")
        return v

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Loads a local .env first when reading the real environment.

        Raises:
            ConfigurationError: If a required variable is missing or invalid
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        required = {
            "discord_token": "DISCORD_TOKEN",
            "client_id": "CLIENT_ID",
            "guild_id": "GUILD_ID",
            "verify_role_id": "VERIFY_ROLE_ID",
            "verify_code": "VERIFY_CODE",
        }
        missing = [var for var in required.values() if not environ.get(var, "").strip()]
        if missing:
            raise ConfigurationError(
                "Missing required environment variables",
                details={"missing": missing},
            )

        values = {field: environ[var] for field, var in required.items()}
        optional = {
            "verify_channel_id": "CHANNEL_ID_VERIFY",
            "verify_timeout_seconds": "VERIFY_TIMEOUT_SECONDS",
            "verify_max_attempts": "VERIFY_MAX_ATTEMPTS",
            "environment": "ENVIRONMENT",
            "sentry_dsn": "SENTRY_DSN",
            "log_level": "LOG_LEVEL",
            "host": "HOST",
            "port": "PORT",
        }
        for field, var in optional.items():
            if environ.get(var) is not None:
                values[field] = environ[var]

        try:
            return cls(**values)
        except ValueError as e:
            # pydantic.ValidationError is a ValueError; keep secrets out of the details
            raise ConfigurationError(
                "Invalid configuration",
                details={"errors": _summarize_errors(e)},
            ) from None


def _summarize_errors(exc: ValueError) -> list[str]:
    """Field names and messages only, never input values."""
    errors = getattr(exc, "errors", None)
    if errors is None:
        return [str(exc)]
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in errors()]
