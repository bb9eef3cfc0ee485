"""Verification code comparison."""

import secrets

from pydantic import BaseModel, ConfigDict, SecretStr


class SecretConfiguration(BaseModel):
    """Expected code and comparison policy. Immutable for the process lifetime."""

    model_config = ConfigDict(frozen=True)

    code: SecretStr
    case_sensitive: bool = False
    strip_whitespace: bool = True


def normalize(value: str | None, config: SecretConfiguration) -> str:
    """Apply the comparison policy to a raw string (None counts as empty)."""
    text = value or ""
    if config.strip_whitespace:
        text = text.strip()
    if not config.case_sensitive:
        text = text.casefold()
    return text


class SecretMatcher:
    """Stateless matcher for candidate codes."""

    def __init__(self, config: SecretConfiguration):
        self.config = config

    def is_empty(self, candidate: str | None) -> bool:
        return not normalize(candidate, self.config)

    def matches(self, candidate: str | None) -> bool:
        """Compare a candidate against the configured code.

        Empty candidates never match, even against an empty code.
        """
        expected = normalize(self.config.code.get_secret_value(), self.config)
        given = normalize(candidate, self.config)
        if not given or not expected:
            return False
        return secrets.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))

    def __repr__(self) -> str:
        return f"SecretMatcher(case_sensitive={self.config.case_sensitive})"
