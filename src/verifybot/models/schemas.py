"""Pydantic schemas for session snapshots and trigger results."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from verifybot.models.enums import SessionState, TerminalReason, TriggerStatus


class SessionOutcome(BaseModel):
    """Terminal state plus the reason that produced it."""

    model_config = ConfigDict(frozen=True)

    state: SessionState
    reason: TerminalReason
    detail: str | None = Field(None, description="Gateway error code, if any")


class TriggerResult(BaseModel):
    """What a trigger invocation did."""

    model_config = ConfigDict(frozen=True)

    status: TriggerStatus
    session_id: UUID | None = None


class SessionRead(BaseModel):
    """Read-only view of a live session."""

    id: UUID
    user_id: str
    guild_id: str
    state: SessionState
    attempts_remaining: int = Field(..., ge=0)
    seconds_remaining: float | None = Field(None, ge=0)
