# app/services/users.py
"""
User directory.

Responsibilities:
- Lookup by OAuth identity (provider + provider account id), email or id
- Upsert of OAuth users, refreshing profile data on every login
- Creation of password-based admin accounts
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth.errors import AccountLinkConflict, EmailAlreadyExists
from app.core.security import hash_password
from app.models.user import OAuthProvider, User, UserRole

if TYPE_CHECKING:
    from app.auth.identity import IdentityClaims

logger = logging.getLogger(__name__)

DEFAULT_NAME = "Intellectify User"


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def normalize_name(name: str | None, fallback: str) -> str:
    """Normalize name, falling back to the email local part if needed."""
    if name:
        clean = name.strip()
        if clean:
            return clean[:255]

    if fallback and "@" in fallback:
        local = fallback.split("@", 1)[0]
        if local:
            return local[:255]
    return DEFAULT_NAME


class UserDirectory:
    def __init__(self, db: Session) -> None:
        self._db = db

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self._db.query(User).filter(User.id == str(user_id)).first()

    def find_by_email(self, email: str) -> Optional[User]:
        return self._db.query(User).filter(User.email == normalize_email(email)).first()

    def find_by_provider_identity(self, provider: OAuthProvider, provider_account_id: str) -> Optional[User]:
        return (
            self._db.query(User)
            .filter(
                User.provider == provider,
                User.provider_account_id == str(provider_account_id),
            )
            .first()
        )

    def create(self, user: User) -> User:
        self._db.add(user)
        self._db.commit()
        self._db.refresh(user)
        return user

    def update_profile(self, user: User, *, email: str, name: str, avatar: str | None) -> User:
        user.email = email
        user.name = name
        user.avatar = avatar
        self._db.commit()
        self._db.refresh(user)
        return user

    def upsert_oauth_user(self, claims: "IdentityClaims") -> User:
        """
        Find the user for an OAuth identity, refreshing name/avatar/email, or
        create one with role USER.

        Two concurrent first logins for the same identity race on the unique
        (provider, provider_account_id) constraint; the loser re-reads the
        winner's row instead of failing.
        """
        email = normalize_email(claims.email)
        name = normalize_name(claims.name, fallback=email)

        user = self.find_by_provider_identity(claims.provider, claims.provider_account_id)
        if user:
            return self._refresh_profile(user, email=email, name=name, avatar=claims.avatar_url)

        existing_by_email = self.find_by_email(email)
        if existing_by_email and self._same_identity(existing_by_email, claims):
            # A concurrent first login for this identity committed in between.
            return self._refresh_profile(existing_by_email, email=email, name=name, avatar=claims.avatar_url)
        if existing_by_email:
            # Safe default: no automatic linking across sign-in methods.
            logger.warning(
                "OAuth login blocked by existing account: provider=%s user_id=%s",
                claims.provider.value,
                existing_by_email.id,
            )
            raise AccountLinkConflict()

        try:
            user = self.create(
                User(
                    email=email,
                    name=name,
                    avatar=claims.avatar_url,
                    role=UserRole.USER,
                    provider=claims.provider,
                    provider_account_id=str(claims.provider_account_id),
                )
            )
        except IntegrityError:
            self._db.rollback()
            user = self.find_by_provider_identity(claims.provider, claims.provider_account_id)
            if user is None:
                # The collision was on email, not on the identity key.
                raise AccountLinkConflict()
            return self._refresh_profile(user, email=email, name=name, avatar=claims.avatar_url)

        logger.info(
            "Provisioned new OAuth user: id=%s, provider=%s",
            user.id,
            claims.provider.value,
        )
        return user

    @staticmethod
    def _same_identity(user: User, claims: "IdentityClaims") -> bool:
        return user.provider == claims.provider and user.provider_account_id == str(claims.provider_account_id)

    def _refresh_profile(self, user: User, *, email: str, name: str, avatar: str | None) -> User:
        try:
            return self.update_profile(user, email=email, name=name, avatar=avatar)
        except IntegrityError:
            self._db.rollback()
            raise AccountLinkConflict()

    def create_admin(self, email: str, password: str, name: str) -> User:
        normalized_email = normalize_email(email)
        if self.find_by_email(normalized_email):
            raise EmailAlreadyExists()

        user = self.create(
            User(
                email=normalized_email,
                name=normalize_name(name, fallback=normalized_email),
                password_hash=hash_password(password),
                role=UserRole.ADMIN,
                provider=None,
                provider_account_id=None,
            )
        )
        logger.info("Created admin user: id=%s", user.id)
        return user
