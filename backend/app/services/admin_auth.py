from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.auth.errors import AdminAccessRequired, CredentialsRequired, InvalidCredentials
from app.core.security import verify_password
from app.models.user import User
from app.services.users import UserDirectory, normalize_email

logger = logging.getLogger(__name__)


def validate_admin_credentials(db: Session, email: str | None, password: str | None) -> User:
    """
    Check an admin email/password pair.

    Unknown email, OAuth-only account and wrong password all fail with the
    same InvalidCredentials so the response does not reveal which accounts exist.
    """
    normalized_email = normalize_email(email)
    if not normalized_email or not password:
        raise CredentialsRequired()

    user = UserDirectory(db).find_by_email(normalized_email)
    if not user or not user.password_hash:
        raise InvalidCredentials()

    if not verify_password(password, user.password_hash):
        logger.warning("Admin login failed: user_id=%s", user.id)
        raise InvalidCredentials()

    if not user.is_admin:
        logger.warning("Admin login refused for non-admin: user_id=%s", user.id)
        raise AdminAccessRequired()

    return user


def create_admin(db: Session, email: str, password: str, name: str) -> User:
    if not normalize_email(email) or not password:
        raise CredentialsRequired()
    return UserDirectory(db).create_admin(email, password, name)
