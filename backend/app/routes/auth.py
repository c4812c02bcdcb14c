# app/routes/auth.py
from __future__ import annotations

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from app.auth.config import AuthConfig
from app.auth.errors import AuthError, error_payload, status_for
from app.auth.orchestrator import AuthOrchestrator
from app.auth.tokens import TokenCookies, TokenService
from app.dependencies.auth import (
    get_auth_config,
    get_auth_orchestrator,
    get_current_user,
    get_token_cookies,
    get_token_service,
)
from app.models.user import OAuthProvider, User
from app.schemas.auth import (
    AccessTokenOut,
    LogoutAllOut,
    MessageOut,
    OneTapIn,
    UserEnvelopeOut,
    UserOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

_INTERNAL_ERROR = {"error": "INTERNAL_ERROR", "message": "Internal server error"}


def _user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def _callback_url(config: AuthConfig, provider: OAuthProvider, params: dict[str, str]) -> str:
    base = f"{config.oauth.frontend_url}/auth/{provider.value.lower()}/callback"
    return f"{base}?{urlencode(params)}"


def _oauth_callback(
    provider: OAuthProvider,
    request: Request,
    code: str | None,
    state: str | None,
    config: AuthConfig,
    cookies: TokenCookies,
    orchestrator: AuthOrchestrator,
) -> RedirectResponse:
    try:
        session = orchestrator.login_via_oauth_callback(provider, code, state, _user_agent(request))
    except AuthError as exc:
        url = _callback_url(config, provider, {"error": exc.message, "code": exc.code})
        return RedirectResponse(url, status_code=302)
    except Exception:
        logger.exception("OAuth callback failed: provider=%s", provider.value)
        url = _callback_url(
            config,
            provider,
            {"error": "Authentication failed", "code": _INTERNAL_ERROR["error"]},
        )
        return RedirectResponse(url, status_code=302)

    response = RedirectResponse(_callback_url(config, provider, {"success": "true"}), status_code=302)
    cookies.set_token_cookies(response, session.tokens)
    return response


def _auth_error_response(exc: AuthError, cookies: TokenCookies) -> JSONResponse:
    response = JSONResponse(status_code=status_for(exc), content=error_payload(exc))
    cookies.clear_token_cookies(response)
    return response


# -----------------------------
# OAuth callbacks
# -----------------------------
@router.get("/google/callback")
def google_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    config: AuthConfig = Depends(get_auth_config),
    cookies: TokenCookies = Depends(get_token_cookies),
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
):
    return _oauth_callback(OAuthProvider.GOOGLE, request, code, state, config, cookies, orchestrator)


@router.get("/github/callback")
def github_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    config: AuthConfig = Depends(get_auth_config),
    cookies: TokenCookies = Depends(get_token_cookies),
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
):
    return _oauth_callback(OAuthProvider.GITHUB, request, code, state, config, cookies, orchestrator)


@router.post("/google-one-tap", response_model=UserEnvelopeOut)
def google_one_tap(
    payload: OneTapIn,
    request: Request,
    response: Response,
    cookies: TokenCookies = Depends(get_token_cookies),
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
):
    session = orchestrator.login_via_one_tap(payload.credential, _user_agent(request))
    cookies.set_token_cookies(response, session.tokens)
    return {"user": UserOut.model_validate(session.user)}


# -----------------------------
# Session lifecycle
# -----------------------------
@router.post("/refresh-token", response_model=AccessTokenOut)
def refresh_token(
    request: Request,
    response: Response,
    cookies: TokenCookies = Depends(get_token_cookies),
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
):
    try:
        session = orchestrator.refresh_session(cookies.read_refresh_cookie(request), _user_agent(request))
    except AuthError as exc:
        # Whatever the client holds is dead; make it drop both cookies.
        return _auth_error_response(exc, cookies)
    except Exception:
        # Rotation may already have revoked the presented token.
        logger.exception("Session refresh failed")
        response = JSONResponse(status_code=500, content=dict(_INTERNAL_ERROR))
        cookies.clear_token_cookies(response)
        return response

    cookies.set_token_cookies(response, session.tokens)
    return {"access_token": session.tokens.access_token, "token_type": "bearer"}


@router.post("/logout", response_model=MessageOut)
def logout(
    request: Request,
    response: Response,
    cookies: TokenCookies = Depends(get_token_cookies),
    tokens: TokenService = Depends(get_token_service),
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
):
    user_id = None
    access_token = cookies.read_access_cookie(request)
    if access_token:
        claims = tokens.verify_access_token(access_token)
        user_id = claims.user_id if claims else None

    orchestrator.logout(cookies.read_refresh_cookie(request), user_id=user_id)
    cookies.clear_token_cookies(response)
    return {"message": "Logged out successfully"}


@router.post("/logout-all", response_model=LogoutAllOut)
def logout_all(
    response: Response,
    user: User = Depends(get_current_user),
    cookies: TokenCookies = Depends(get_token_cookies),
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
):
    revoked = orchestrator.logout_everywhere(user.id)
    cookies.clear_token_cookies(response)
    return {"message": "Logged out from all devices", "revoked_sessions": revoked}


@router.get("/me", response_model=UserEnvelopeOut)
def me(user: User = Depends(get_current_user)):
    return {"user": UserOut.model_validate(user)}
