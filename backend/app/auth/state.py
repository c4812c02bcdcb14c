# app/auth/state.py
"""
Structural validation of the OAuth ``state`` parameter.

The frontend generates the state, stores it locally and sends it through the
provider; the provider echoes it back to our callback. Issued states are not
stored server-side, so the checks here are format-only: present, sensible
length, alphanumeric. They reject forged or mangled callbacks early, but they
are not a replay check against a known-issued value.
"""
from __future__ import annotations

import re
import secrets
from dataclasses import dataclass

from app.auth.errors import AuthError, InvalidStateFormat, MissingState

STATE_MIN_LENGTH = 8
STATE_MAX_LENGTH = 128

MISSING_STATE = "MISSING_STATE"
INVALID_STATE_LENGTH = "INVALID_STATE_LENGTH"
INVALID_STATE_FORMAT = "INVALID_STATE_FORMAT"

_STATE_RE = re.compile(r"[A-Za-z0-9]+")


@dataclass(frozen=True)
class StateValidation:
    valid: bool
    state: str | None = None
    error: str | None = None
    code: str | None = None

    @classmethod
    def ok(cls, state: str) -> "StateValidation":
        return cls(valid=True, state=state)

    @classmethod
    def failed(cls, error: str, code: str) -> "StateValidation":
        return cls(valid=False, error=error, code=code)

    def to_error(self) -> AuthError:
        if self.valid:
            raise ValueError("Valid state has no error")
        if self.code == MISSING_STATE:
            return MissingState(self.error)
        return InvalidStateFormat(self.error, code=self.code)


def validate_state(received_state: str | None, user_agent: str | None = None) -> StateValidation:
    """
    Check a returned OAuth state. First failing rule wins.

    user_agent is accepted for callers that log it; it does not affect the result.
    """
    if not received_state:
        return StateValidation.failed("Missing state parameter", MISSING_STATE)

    if len(received_state) < STATE_MIN_LENGTH:
        return StateValidation.failed("State parameter too short", INVALID_STATE_LENGTH)

    if len(received_state) > STATE_MAX_LENGTH:
        return StateValidation.failed("State parameter too long", INVALID_STATE_LENGTH)

    if not _STATE_RE.fullmatch(received_state):
        return StateValidation.failed("State parameter contains invalid characters", INVALID_STATE_FORMAT)

    return StateValidation.ok(received_state)


def generate_secure_state() -> str:
    """32 hex chars of CSPRNG output; passes validate_state."""
    return secrets.token_hex(16)
