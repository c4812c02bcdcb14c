# app/routes/admin_auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from app.auth.errors import AuthError
from app.auth.orchestrator import AuthOrchestrator
from app.auth.tokens import TokenCookies
from app.core.database import get_db
from app.dependencies.admin import require_admin_user
from app.dependencies.auth import get_auth_orchestrator, get_token_cookies
from app.models.user import User
from app.schemas.auth import AdminLoginIn, UserEnvelopeOut, UserOut, ValidOut
from app.services.admin_auth import validate_admin_credentials

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/auth", tags=["admin"])


@router.post("/login", response_model=UserEnvelopeOut)
def admin_login(
    payload: AdminLoginIn,
    request: Request,
    response: Response,
    cookies: TokenCookies = Depends(get_token_cookies),
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
):
    session = orchestrator.login_admin(
        payload.email,
        payload.password,
        request.headers.get("user-agent"),
    )
    cookies.set_token_cookies(response, session.tokens)
    return {"user": UserOut.model_validate(session.user)}


@router.post("/validate", response_model=ValidOut)
def admin_validate(payload: AdminLoginIn, db: Session = Depends(get_db)):
    """Check admin credentials without starting a session."""
    try:
        validate_admin_credentials(db, payload.email, payload.password)
    except AuthError as exc:
        logger.info("Admin credential check failed: code=%s", exc.code)
        return {"valid": False}
    return {"valid": True}


@router.get("/me", response_model=UserEnvelopeOut)
def admin_me(admin: User = Depends(require_admin_user)):
    return {"user": UserOut.model_validate(admin)}
