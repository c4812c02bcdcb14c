# app/auth/orchestrator.py
"""
Login, refresh and logout flows.

Sequences state validation, identity exchange, user upsert and token issuance.
Routes stay thin: they read inputs off the request, call one method here and
translate the result (or the AuthError) into cookies, JSON or a redirect.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.auth.errors import (
    AuthError,
    InvalidCredential,
    InvalidRefreshToken,
    MissingCode,
    MissingToken,
    UserNotFound,
)
from app.auth.identity import IdentityExchange
from app.auth.state import validate_state
from app.auth.tokens import TokenPair, TokenService
from app.models.user import OAuthProvider, User
from app.services.admin_auth import validate_admin_credentials
from app.services.users import UserDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthSession:
    user: User
    tokens: TokenPair


def _log_event(event: str, **fields: Any) -> None:
    payload = {"event": event, **fields}
    logger.info(json.dumps(payload, separators=(",", ":"), default=str))


class AuthOrchestrator:
    def __init__(
        self,
        db: Session,
        tokens: TokenService,
        identity: IdentityExchange,
        users: UserDirectory,
    ) -> None:
        self._db = db
        self._tokens = tokens
        self._identity = identity
        self._users = users

    def login_via_oauth_callback(
        self,
        provider: OAuthProvider,
        code: str | None,
        state: str | None,
        user_agent: str | None,
    ) -> AuthSession:
        try:
            if not code:
                raise MissingCode()

            validation = validate_state(state, user_agent)
            if not validation.valid:
                raise validation.to_error()

            claims = self._identity.exchange_code(provider, code)
            user = self._identity.upsert_user(claims)
        except AuthError as exc:
            _log_event("login_failed", method=provider.value.lower(), code=exc.code)
            raise

        return self._start_session(user, user_agent, method=provider.value.lower())

    def login_via_one_tap(self, credential: str | None, user_agent: str | None) -> AuthSession:
        try:
            if not credential:
                raise InvalidCredential("Google credential is required")

            claims = self._identity.verify_google_one_tap_credential(credential)
            user = self._identity.upsert_user(claims)
        except AuthError as exc:
            _log_event("login_failed", method="google_one_tap", code=exc.code)
            raise

        return self._start_session(user, user_agent, method="google_one_tap")

    def login_admin(self, email: str | None, password: str | None, user_agent: str | None) -> AuthSession:
        try:
            user = validate_admin_credentials(self._db, email, password)
        except AuthError as exc:
            _log_event("login_failed", method="admin_password", code=exc.code)
            raise

        return self._start_session(user, user_agent, method="admin_password")

    def refresh_session(self, old_refresh_token: str | None, user_agent: str | None) -> AuthSession:
        """
        Exchange a live refresh token for a new pair.

        The presented token is revoked as part of rotation, so replaying it
        afterwards fails with InvalidRefreshToken.
        """
        try:
            if not old_refresh_token:
                raise MissingToken("No refresh token provided")

            claims = self._tokens.verify_refresh_token(old_refresh_token)
            if claims is None:
                raise InvalidRefreshToken()

            user = self._users.get_by_id(claims.user_id)
            if user is None:
                raise UserNotFound()

            new_refresh = self._tokens.rotate_refresh_token(user.id, old_refresh_token, user_agent)
            pair = TokenPair(
                access_token=self._tokens.issue_access_token(user.id),
                refresh_token=new_refresh,
            )
        except AuthError as exc:
            _log_event("refresh_failed", code=exc.code)
            raise

        _log_event("refresh", user_id=user.id)
        return AuthSession(user=user, tokens=pair)

    def logout(self, refresh_token: str | None, user_id: str | None = None) -> None:
        """
        Best-effort revocation of the presented refresh token.

        Never raises: a logout the client asked for always succeeds, and the
        route clears cookies regardless.
        """
        if not refresh_token:
            _log_event("logout", user_id=user_id, revoked=False)
            return

        try:
            if user_id is None:
                claims = self._tokens.verify_refresh_token(refresh_token)
                user_id = claims.user_id if claims else None
            if user_id is not None:
                self._tokens.revoke_specific_token(refresh_token, user_id)
        except SQLAlchemyError:
            self._db.rollback()
            logger.exception("Failed to revoke refresh token on logout: user_id=%s", user_id)
            _log_event("logout", user_id=user_id, revoked=False)
            return

        _log_event("logout", user_id=user_id, revoked=user_id is not None)

    def logout_everywhere(self, user_id: str) -> int:
        revoked = self._tokens.revoke_all_user_tokens(user_id)
        _log_event("logout_all", user_id=user_id, revoked_count=revoked)
        return revoked

    def _start_session(self, user: User, user_agent: str | None, *, method: str) -> AuthSession:
        pair = self._tokens.issue_for_user(user, user_agent)
        _log_event("login", method=method, user_id=user.id, role=user.role.value)
        return AuthSession(user=user, tokens=pair)
