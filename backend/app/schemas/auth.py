# app/schemas/auth.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.user import UserRole


class OneTapIn(BaseModel):
    credential: str | None = Field(default=None, max_length=8192)


class AdminLoginIn(BaseModel):
    # Plain strings: empty values are reported as CREDENTIALS_REQUIRED, not a 422.
    email: str | None = Field(default=None, max_length=255)
    password: str | None = Field(default=None, max_length=128)


class UserOut(BaseModel):
    id: str
    email: str
    name: str
    avatar: str | None = None
    role: UserRole
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class UserEnvelopeOut(BaseModel):
    user: UserOut


class AccessTokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MessageOut(BaseModel):
    message: str


class LogoutAllOut(BaseModel):
    message: str
    revoked_sessions: int


class ValidOut(BaseModel):
    valid: bool
