"""Verification core: code matching, deadlines, sessions and their registry."""

from verifybot.verification.manager import SessionManager
from verifybot.verification.matcher import SecretConfiguration, SecretMatcher
from verifybot.verification.session import VerificationSession

__all__ = [
    "SecretConfiguration",
    "SecretMatcher",
    "SessionManager",
    "VerificationSession",
]
