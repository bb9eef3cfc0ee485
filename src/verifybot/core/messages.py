"""User-facing text sent over DMs and command replies.

Nothing here may interpolate the verification code or the bot token.
"""

from verifybot.core.errors import AppError

PROMPT = "Enter your verification code (you have {seconds} seconds):"
WRONG_CODE = "❌ Wrong code, try again ({remaining} attempts left)."
GRANTED = "✅ Verification successful! The role has been granted."
ALREADY_VERIFIED = "ℹ️ **You already have the role, no need to verify again.**"
CHECK_DMS = "📩 Check your DMs!"
IN_PROGRESS = "⏳ A verification is already in progress, check your DMs."
PENDING_SCREENING = (
    "⚠️ You need to **accept the rules / membership screening** in the server first, "
    "then run /verify or !verify again."
)
NOT_APPLIED = (
    "❌ Adding the role does not seem to have worked. "
    "Check the bot's permissions / role order / screening."
)
GRANT_ERROR = (
    "❌ Error while granting the role: `{code}`. "
    "Check **Manage Roles / role order / screening**."
)
GUARD_ERROR = "❗ Could not check your roles right now: `{code}`. Please try again in a moment."
TIMED_OUT = "⌛ Time is up, run /verify or !verify in the server to try again."
ATTEMPTS_EXHAUSTED = "⛔ Too many wrong codes, run /verify or !verify in the server to try again."
DM_FAILED = (
    "❗ Could not start a DM. Check that “Allow DMs from server members” is enabled."
)
WRONG_CHANNEL = "⚠️ This command can only be used in <#{channel_id}>!"
UNEXPECTED = "❗ Something went wrong, please try again later."

_ERROR_MESSAGES = {
    "GUILD_NOT_FOUND": "❗ This server could not be found by the bot. Contact a moderator.",
    "VERIFY_ROLE_NOT_FOUND": "❗ The verification role is not configured correctly. Contact a moderator.",
    "BOT_MISSING_MANAGE_ROLES": "❗ The bot is missing the **Manage Roles** permission. Contact a moderator.",
    "ROLE_ORDER_TOO_HIGH": (
        "❗ The verification role is above the bot's highest role. Contact a moderator."
    ),
    "ALREADY_IN_PROGRESS": IN_PROGRESS,
    "CANNOT_OPEN_DM": DM_FAILED,
}


def describe_error(exc: AppError) -> str:
    """Map a failure at trigger time (before any grant) to the text shown to the user.

    Unknown codes are platform errors from the start checks and are forwarded.
    """
    if exc.code in _ERROR_MESSAGES:
        return _ERROR_MESSAGES[exc.code]
    return GUARD_ERROR.format(code=exc.code)
