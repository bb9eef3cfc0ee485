"""
Enums for verification sessions.
Enums provide type safety and clarity for states, outcomes and trigger results.
"""

import enum


class SessionState(str, enum.Enum):
    """Verification session lifecycle states."""

    CREATED = "CREATED"
    PROMPTING = "PROMPTING"
    AWAITING_RESPONSE = "AWAITING_RESPONSE"
    VERIFYING = "VERIFYING"
    # Terminal
    GRANTED = "GRANTED"
    GRANT_FAILED = "GRANT_FAILED"
    EXPIRED = "EXPIRED"
    ALREADY_PRIVILEGED = "ALREADY_PRIVILEGED"
    BLOCKED = "BLOCKED"
    ABORTED = "ABORTED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        SessionState.GRANTED,
        SessionState.GRANT_FAILED,
        SessionState.EXPIRED,
        SessionState.ALREADY_PRIVILEGED,
        SessionState.BLOCKED,
        SessionState.ABORTED,
    }
)


class TerminalReason(str, enum.Enum):
    """Why a session ended; distinguishes variants of the same terminal state."""

    VERIFIED = "VERIFIED"
    ALREADY_PRIVILEGED = "ALREADY_PRIVILEGED"
    TIMEOUT = "TIMEOUT"
    ATTEMPTS_EXHAUSTED = "ATTEMPTS_EXHAUSTED"
    PENDING_SCREENING = "PENDING_SCREENING"
    NOT_APPLIED = "NOT_APPLIED"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    MISCONFIGURED = "MISCONFIGURED"
    MISSING_PERMISSION = "MISSING_PERMISSION"
    ROLE_ORDER_TOO_HIGH = "ROLE_ORDER_TOO_HIGH"
    CHANNEL_UNAVAILABLE = "CHANNEL_UNAVAILABLE"
    CANCELLED = "CANCELLED"


class BlockReason(str, enum.Enum):
    """Why the bot cannot grant the verify role in a guild."""

    MISSING_PERMISSION = "MISSING_PERMISSION"
    ROLE_ORDER_TOO_HIGH = "ROLE_ORDER_TOO_HIGH"


class TriggerStatus(str, enum.Enum):
    """Immediate result of a trigger; not the final verification outcome."""

    STARTED = "STARTED"
    ALREADY_PRIVILEGED = "ALREADY_PRIVILEGED"
    ALREADY_IN_PROGRESS = "ALREADY_IN_PROGRESS"
