# app/models/refresh_token.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.base import Base


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Store ONLY a hash of the signed refresh token (never the raw token)
    token_hash = Column(String(64), unique=True, index=True, nullable=False)

    user_agent = Column(Text, nullable=True)

    # Issued-at + refresh lifetime; rotation issues a new row with a new window
    expires_at = Column(DateTime(timezone=True), nullable=False)

    # If set, token is no longer valid. Never cleared once set.
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="refresh_tokens")
