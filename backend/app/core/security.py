# app/core/security.py
from __future__ import annotations

from hashlib import sha256

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


# -------------------------
# Password hashing
# -------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password or not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


# -------------------------
# Refresh token hashing
# -------------------------
def hash_refresh_token(token: str) -> str:
    """
    Hash a signed refresh token for DB storage (never store the raw token).
    """
    return sha256(token.encode("utf-8")).hexdigest()
