# app/dependencies/auth.py
from __future__ import annotations

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.auth.config import AuthConfig
from app.auth.errors import MissingToken, UserNotFound
from app.auth.identity import IdentityExchange
from app.auth.orchestrator import AuthOrchestrator
from app.auth.tokens import TokenCookies, TokenService
from app.core.database import get_db
from app.models.user import User
from app.services.refresh_tokens import RefreshTokenStore
from app.services.users import UserDirectory

bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_config(request: Request) -> AuthConfig:
    return request.app.state.auth_config


def get_token_service(
    config: AuthConfig = Depends(get_auth_config),
    db: Session = Depends(get_db),
) -> TokenService:
    return TokenService(RefreshTokenStore(db), config.tokens)


def get_token_cookies(config: AuthConfig = Depends(get_auth_config)) -> TokenCookies:
    return TokenCookies(config.tokens)


def get_identity_exchange(
    request: Request,
    config: AuthConfig = Depends(get_auth_config),
    db: Session = Depends(get_db),
) -> IdentityExchange:
    return IdentityExchange(
        config.oauth,
        request.app.state.http_client,
        request.app.state.google_keys,
        UserDirectory(db),
    )


def get_auth_orchestrator(
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    identity: IdentityExchange = Depends(get_identity_exchange),
) -> AuthOrchestrator:
    return AuthOrchestrator(db, tokens, identity, UserDirectory(db))


def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    cookies: TokenCookies = Depends(get_token_cookies),
    tokens: TokenService = Depends(get_token_service),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the caller from the access token.

    Reads the access_token cookie first and falls back to
    ``Authorization: Bearer <token>`` for non-browser clients.
    Raises MissingToken / InvalidAccessToken / AccessTokenExpired / UserNotFound.
    """
    token = cookies.read_access_cookie(request)
    if not token and creds and creds.scheme.lower() == "bearer":
        token = creds.credentials
    if not token:
        raise MissingToken()

    claims = tokens.decode_access_token(token)

    user = UserDirectory(db).get_by_id(claims.user_id)
    if not user:
        raise UserNotFound()

    request.state.user = user
    return user
