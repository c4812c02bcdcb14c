# app/models/user.py
import enum
import uuid

from sqlalchemy import Column, DateTime, Enum, String, UniqueConstraint, func
from sqlalchemy.orm import relationship

from app.core.base import Base


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    USER = "USER"


class OAuthProvider(str, enum.Enum):
    GOOGLE = "GOOGLE"
    GITHUB = "GITHUB"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        # Postgres/SQLite treat NULLs as distinct, so password accounts never collide here.
        UniqueConstraint("provider", "provider_account_id", name="uq_users_provider_account"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    avatar = Column(String(1024), nullable=True)
    role = Column(
        Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.USER,
        server_default=UserRole.USER.value,
    )

    # Only admin/password accounts carry a hash; OAuth users never do.
    password_hash = Column(String(255), nullable=True)

    provider = Column(Enum(OAuthProvider, name="oauth_provider"), nullable=True)
    provider_account_id = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # user → refresh tokens
    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self) -> str:
        return f"<User {self.email}>"
