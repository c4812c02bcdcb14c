# app/auth/tokens.py
"""
Access/refresh token service and cookie transport.

- Access tokens: short-lived JWTs asserting only the user id. Stateless, so
  they cannot be revoked before they expire.
- Refresh tokens: longer-lived JWTs whose SHA-256 hash is stored; a refresh
  token is only good while its record is unrevoked and unexpired.
- Rotation revokes the predecessor with a conditional update before the
  successor is written, and every rotation starts a fresh refresh window.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import Request, Response
from jose import ExpiredSignatureError, JWTError, jwt

from app.auth.config import TokenConfig
from app.auth.errors import AccessTokenExpired, InvalidAccessToken, InvalidRefreshToken
from app.core.security import hash_refresh_token
from app.models.user import User
from app.services.refresh_tokens import RefreshTokenStore

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AccessTokenClaims:
    user_id: str
    expires_at: datetime


@dataclass(frozen=True)
class RefreshTokenClaims:
    user_id: str
    token_id: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenService:
    def __init__(self, store: RefreshTokenStore, config: TokenConfig, *, clock: Clock = utc_now) -> None:
        # A missing signing key is a deployment error, not a per-request failure.
        if not config.access_secret or not config.refresh_secret:
            raise RuntimeError("JWT access and refresh secrets must be set.")
        self._store = store
        self._config = config
        self._clock = clock

    # -----------------------------
    # Issuance
    # -----------------------------
    def issue_access_token(self, user_id: str) -> str:
        now = self._clock()
        payload = {
            "sub": str(user_id),
            "type": ACCESS_TOKEN_TYPE,
            "iat": int(now.timestamp()),
            "exp": int((now + self._config.access_ttl).timestamp()),
        }
        return jwt.encode(payload, self._config.access_secret, algorithm=self._config.algorithm)

    def issue_refresh_token(self, user_id: str, user_agent: str | None) -> str:
        now = self._clock()
        expires_at = now + self._config.refresh_ttl
        payload = {
            "sub": str(user_id),
            "type": REFRESH_TOKEN_TYPE,
            # Two tokens minted in the same second for one user must still differ.
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self._config.refresh_secret, algorithm=self._config.algorithm)

        self._store.add(
            user_id=str(user_id),
            token_hash=hash_refresh_token(token),
            user_agent=user_agent,
            expires_at=expires_at,
        )
        return token

    def issue_for_user(self, user: User, user_agent: str | None) -> TokenPair:
        return self.issue_for_user_id(user.id, user_agent)

    def issue_for_user_id(self, user_id: str, user_agent: str | None) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(user_id),
            refresh_token=self.issue_refresh_token(user_id, user_agent),
        )

    # -----------------------------
    # Verification
    # -----------------------------
    def verify_access_token(self, token: str) -> AccessTokenClaims | None:
        """Signature + expiry only. Returns None for anything invalid."""
        try:
            return self.decode_access_token(token)
        except InvalidAccessToken:
            return None

    def decode_access_token(self, token: str) -> AccessTokenClaims:
        """
        Same check as verify_access_token, but tells expired apart from malformed
        for callers that report the difference.
        """
        try:
            payload = self._decode(token, self._config.access_secret, ACCESS_TOKEN_TYPE)
        except ExpiredSignatureError as exc:
            raise AccessTokenExpired() from exc
        except JWTError as exc:
            raise InvalidAccessToken() from exc

        return AccessTokenClaims(
            user_id=str(payload["sub"]),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def verify_refresh_token(self, token: str) -> RefreshTokenClaims | None:
        """Signature + expiry AND a live, matching record in the store."""
        try:
            payload = self._decode(token, self._config.refresh_secret, REFRESH_TOKEN_TYPE)
        except JWTError:
            return None

        user_id = str(payload["sub"])
        record = self._store.find_active(hash_refresh_token(token), user_id=user_id, now=self._clock())
        if record is None:
            return None

        return RefreshTokenClaims(
            user_id=user_id,
            token_id=str(payload.get("jti") or ""),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    # -----------------------------
    # Rotation / revocation
    # -----------------------------
    def rotate_refresh_token(self, user_id: str, old_token: str, user_agent: str | None) -> str:
        """
        Revoke old_token and issue its successor.

        The revoke is a conditional update committed before the new token is
        written: if it matches nothing (unknown, revoked, expired, or lost a
        race with a concurrent rotation) no successor is issued.
        """
        revoked = self._store.revoke_if_active(
            hash_refresh_token(old_token),
            user_id=str(user_id),
            now=self._clock(),
        )
        if not revoked:
            logger.warning("Refresh token rotation rejected: user_id=%s", user_id)
            raise InvalidRefreshToken()

        return self.issue_refresh_token(user_id, user_agent)

    def revoke_specific_token(self, token: str, user_id: str) -> None:
        """Revoke the matching live record, if any. Safe to repeat."""
        self._store.revoke_matching(
            hash_refresh_token(token),
            user_id=str(user_id),
            now=self._clock(),
        )

    def revoke_all_user_tokens(self, user_id: str) -> int:
        return self._store.revoke_all_for_user(str(user_id), now=self._clock())

    # -----------------------------
    # Internals
    # -----------------------------
    def _decode(self, token: str, secret: str, expected_type: str) -> dict[str, Any]:
        # Expiry is checked against the injected clock rather than jose's wall clock.
        payload = jwt.decode(
            token,
            secret,
            algorithms=[self._config.algorithm],
            options={"verify_exp": False},
        )

        if payload.get("type") != expected_type:
            raise JWTError("Invalid token type")
        if not payload.get("sub"):
            raise JWTError("Token missing 'sub'")

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            raise JWTError("Token missing 'exp'")
        if exp <= self._clock().timestamp():
            raise ExpiredSignatureError("Signature has expired.")

        return payload


class TokenCookies:
    """
    HttpOnly cookie transport for the token pair.

    Set and clear use identical attributes so browsers match and drop them.
    """

    def __init__(self, config: TokenConfig) -> None:
        self._config = config

    def _attributes(self) -> dict[str, Any]:
        return {
            "path": self._config.cookie_path,
            "secure": self._config.cookie_secure,
            "httponly": True,
            "samesite": self._config.cookie_samesite,
        }

    def set_token_cookies(self, response: Response, pair: TokenPair) -> None:
        response.set_cookie(
            key=self._config.access_cookie_name,
            value=pair.access_token,
            max_age=self._config.access_max_age_seconds,
            **self._attributes(),
        )
        response.set_cookie(
            key=self._config.refresh_cookie_name,
            value=pair.refresh_token,
            max_age=self._config.refresh_max_age_seconds,
            **self._attributes(),
        )

    def clear_token_cookies(self, response: Response) -> None:
        response.delete_cookie(key=self._config.access_cookie_name, **self._attributes())
        response.delete_cookie(key=self._config.refresh_cookie_name, **self._attributes())

    def read_access_cookie(self, request: Request) -> str | None:
        return _read_cookie(request, self._config.access_cookie_name)

    def read_refresh_cookie(self, request: Request) -> str | None:
        return _read_cookie(request, self._config.refresh_cookie_name)


def _read_cookie(request: Request, name: str) -> str | None:
    val = request.cookies.get(name)
    if not val:
        return None
    val = val.strip()
    return val or None
