from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.refresh_token import RefreshToken


class RefreshTokenStore:
    """
    Persistence for issued refresh tokens.

    Only hashes are stored. Every write commits immediately so a revoke is
    durable before the caller moves on (rotation depends on that ordering).
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def add(
        self,
        *,
        user_id: str,
        token_hash: str,
        user_agent: str | None,
        expires_at: datetime,
    ) -> RefreshToken:
        rt = RefreshToken(
            user_id=user_id,
            token_hash=token_hash,
            user_agent=user_agent,
            expires_at=expires_at,
            revoked_at=None,
        )
        self._db.add(rt)
        self._db.commit()
        return rt

    def find_active(self, token_hash: str, *, user_id: str, now: datetime) -> RefreshToken | None:
        return (
            self._db.query(RefreshToken)
            .filter(
                RefreshToken.token_hash == token_hash,
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > now,
            )
            .first()
        )

    def revoke_if_active(self, token_hash: str, *, user_id: str, now: datetime) -> bool:
        """
        Conditionally revoke one live token in a single UPDATE.

        Returns False when no row matched (unknown, already revoked, expired or
        owned by someone else). Of two racing callers only one sees True.
        """
        stmt = (
            update(RefreshToken)
            .where(
                RefreshToken.token_hash == token_hash,
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > now,
            )
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self._db.execute(stmt)
        self._db.commit()
        return result.rowcount == 1

    def revoke_matching(self, token_hash: str, *, user_id: str, now: datetime) -> int:
        stmt = (
            update(RefreshToken)
            .where(
                RefreshToken.token_hash == token_hash,
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
            )
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self._db.execute(stmt)
        self._db.commit()
        return result.rowcount

    def revoke_all_for_user(self, user_id: str, *, now: datetime) -> int:
        stmt = (
            update(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
            )
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self._db.execute(stmt)
        self._db.commit()
        return result.rowcount

    def count_active_for_user(self, user_id: str, *, now: datetime) -> int:
        return (
            self._db.query(RefreshToken)
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > now,
            )
            .count()
        )
