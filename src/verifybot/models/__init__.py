"""Domain models package."""

from verifybot.models.enums import (
    TERMINAL_STATES,
    BlockReason,
    SessionState,
    TerminalReason,
    TriggerStatus,
)
from verifybot.models.schemas import SessionOutcome, SessionRead, TriggerResult

__all__ = [
    "BlockReason",
    "SessionOutcome",
    "SessionRead",
    "SessionState",
    "TERMINAL_STATES",
    "TerminalReason",
    "TriggerResult",
    "TriggerStatus",
]
