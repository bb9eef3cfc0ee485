"""Custom exceptions and error response schemas."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Standardized error response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[dict[str, Any]] = Field(None, description="Additional context")


class AppError(Exception):
    """Base exception for all app-level errors."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_response(self) -> ErrorDetail:
        """Convert to API response schema."""
        return ErrorDetail(
            code=self.code,
            message=self.message,
            details=self.details if self.details else None,
        )


class NotFoundError(AppError):
    """Raised when resource doesn't exist."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            code="NOT_FOUND",
            message=f"{resource} with ID {resource_id} not found",
            status_code=404,
            details={"resource": resource, "resource_id": resource_id},
        )


class ConfigurationError(AppError):
    """Raised when required settings are missing or malformed."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="CONFIG_ERROR",
            message=message,
            status_code=500,
            details=details,
        )


class InvalidTokenError(ConfigurationError):
    """Raised when the bot token fails its startup sanity check."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, details=details)
        self.code = "INVALID_TOKEN"


class DeliveryError(AppError):
    """Raised by a channel adapter when a DM cannot be opened or sent."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="DELIVERY_FAILED",
            message=message,
            status_code=502,
            details=details,
        )


class GatewayError(AppError):
    """Raised when the platform rejects or fails a role operation.

    Distinct from a negative answer: ``has_privilege`` returning False is
    not an error, a 403 from the platform is.
    """

    def __init__(self, message: str, code: str = "GATEWAY_ERROR", details: Optional[dict] = None):
        super().__init__(
            code=code,
            message=message,
            status_code=502,
            details=details,
        )


# Trigger failures: terminal for the invocation, no session is left registered.


class VerificationError(AppError):
    """Base for failures reported to whoever triggered a verification."""


class GuildNotFoundError(VerificationError):
    """Raised when the guild a trigger refers to cannot be resolved."""

    def __init__(self, guild_id: int):
        super().__init__(
            code="GUILD_NOT_FOUND",
            message=f"Guild {guild_id} not found",
            status_code=404,
            details={"guild_id": str(guild_id)},
        )


class RoleNotFoundError(VerificationError):
    """Raised when the configured verify role does not exist in the guild."""

    def __init__(self, role_id: int):
        super().__init__(
            code="VERIFY_ROLE_NOT_FOUND",
            message=f"Verify role {role_id} not found",
            status_code=404,
            details={"role_id": str(role_id)},
        )


class MissingPermissionError(VerificationError):
    """Raised when the bot lacks Manage Roles in the guild."""

    def __init__(self, message: str = "Bot is missing the Manage Roles permission"):
        super().__init__(code="BOT_MISSING_MANAGE_ROLES", message=message, status_code=403)


class RoleOrderTooHighError(VerificationError):
    """Raised when the verify role is not strictly below the bot's highest role."""

    def __init__(self, message: str = "Verify role is not below the bot's highest role"):
        super().__init__(code="ROLE_ORDER_TOO_HIGH", message=message, status_code=403)


class AlreadyInProgressError(VerificationError):
    """Raised when a live session already exists for the user."""

    def __init__(self, user_id: int, guild_id: int):
        super().__init__(
            code="ALREADY_IN_PROGRESS",
            message="A verification session is already in progress",
            status_code=409,
            details={"user_id": str(user_id), "guild_id": str(guild_id)},
        )


class CannotOpenChannelError(VerificationError):
    """Raised when the DM cannot be opened or the prompt cannot be delivered."""

    def __init__(self, user_id: int, details: Optional[dict] = None):
        super().__init__(
            code="CANNOT_OPEN_DM",
            message=f"Could not open a DM with user {user_id}",
            status_code=502,
            details=details,
        )
