# app/auth/errors.py
"""
Typed failures for the authentication core.

Every failure the auth layer can surface is a subclass of ``AuthError`` with a
stable machine-readable ``code``. The HTTP boundary turns them into responses
through ``status_for`` only, so adding a subclass without a status entry is
caught by the test suite rather than leaking a 500.
"""
from __future__ import annotations


class AuthError(Exception):
    """Base exception for authentication failures."""

    code = "AUTH_ERROR"
    default_message = "Authentication failed"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        super().__init__(message or self.default_message)
        if code:
            self.code = code

    @property
    def message(self) -> str:
        return str(self.args[0])


# ---------------------------------------------------------------------------
# OAuth state
# ---------------------------------------------------------------------------


class MissingState(AuthError):
    code = "MISSING_STATE"
    default_message = "Missing state parameter"


class InvalidStateFormat(AuthError):
    """Raised for a state that is too short, too long or has bad characters."""

    code = "INVALID_STATE_FORMAT"
    default_message = "State parameter contains invalid characters"


# ---------------------------------------------------------------------------
# Identity exchange
# ---------------------------------------------------------------------------


class MissingCode(AuthError):
    code = "MISSING_CODE"
    default_message = "Authorization code is required"


class OAuthExchangeFailed(AuthError):
    """Upstream provider call failed (HTTP error, timeout, bad payload)."""

    code = "OAUTH_EXCHANGE_FAILED"
    default_message = "OAuth exchange failed"


class MissingEmail(AuthError):
    code = "MISSING_EMAIL"
    default_message = "Unable to retrieve email from provider"


class InvalidCredential(AuthError):
    """One-Tap credential failed signature, issuer or audience checks."""

    code = "INVALID_CREDENTIAL"
    default_message = "Invalid Google credential"


class AccountLinkConflict(AuthError):
    code = "ACCOUNT_LINK_CONFLICT"
    default_message = "An account with this email already exists with a different sign-in method"


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class MissingToken(AuthError):
    code = "MISSING_TOKEN"
    default_message = "No token provided"


class InvalidAccessToken(AuthError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token"


class AccessTokenExpired(InvalidAccessToken):
    code = "TOKEN_EXPIRED"
    default_message = "Token expired"


class InvalidRefreshToken(AuthError):
    """Refresh token not found, revoked, expired or signed for someone else."""

    code = "INVALID_REFRESH_TOKEN"
    default_message = "Invalid or expired refresh token"


class UserNotFound(AuthError):
    code = "USER_NOT_FOUND"
    default_message = "User not found"


# ---------------------------------------------------------------------------
# Admin password login
# ---------------------------------------------------------------------------


class CredentialsRequired(AuthError):
    code = "CREDENTIALS_REQUIRED"
    default_message = "Email and password are required"


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password"


class AdminAccessRequired(AuthError):
    code = "ADMIN_ACCESS_REQUIRED"
    default_message = "Admin access required"


class EmailAlreadyExists(AuthError):
    code = "EMAIL_ALREADY_EXISTS"
    default_message = "User with this email already exists"


_STATUS_BY_ERROR: dict[type[AuthError], int] = {
    MissingState: 400,
    InvalidStateFormat: 400,
    MissingCode: 400,
    OAuthExchangeFailed: 502,
    MissingEmail: 400,
    InvalidCredential: 401,
    AccountLinkConflict: 409,
    MissingToken: 401,
    InvalidAccessToken: 401,
    AccessTokenExpired: 401,
    InvalidRefreshToken: 401,
    UserNotFound: 401,
    CredentialsRequired: 400,
    InvalidCredentials: 401,
    AdminAccessRequired: 403,
    EmailAlreadyExists: 409,
}


def status_for(error: AuthError) -> int:
    """HTTP status for an auth failure; unknown subclasses are a server bug."""
    return _STATUS_BY_ERROR.get(type(error), 500)


def error_payload(error: AuthError) -> dict[str, str]:
    """Body in the app-wide ``{"error": CODE, "message": ...}`` envelope."""
    return {"error": error.code, "message": error.message}


def known_error_types() -> frozenset[type[AuthError]]:
    return frozenset(_STATUS_BY_ERROR)
