from __future__ import annotations

from fastapi import Depends

from app.auth.errors import AdminAccessRequired
from app.dependencies.auth import get_current_user
from app.models.user import User


def require_admin_user(current_user: User = Depends(get_current_user)) -> User:
    """
    Ensure the authenticated user has the ADMIN role.
    """
    if not current_user.is_admin:
        raise AdminAccessRequired()
    return current_user
