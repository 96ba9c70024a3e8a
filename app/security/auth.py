"""Authentication dependencies for the admin dashboard routers."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from typing import Callable

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session, sessionmaker

from app.core.auth import AdminTokenPayload, get_admin_context
from app.models import AdminUser
from app.models.session import get_sessionmaker

ROLE_LEVELS = {"viewer": 0, "operator": 1, "admin": 2}
_SESSION_FACTORY: sessionmaker[Session] | None = None


def get_session_factory() -> sessionmaker[Session]:
    """Return the cached factory for admin database sessions."""

    global _SESSION_FACTORY
    if _SESSION_FACTORY is None:
        _SESSION_FACTORY = get_sessionmaker()
    return _SESSION_FACTORY


def reset_session_factory() -> None:
    """Forget the cached session factory so a new database URL is picked up."""

    global _SESSION_FACTORY
    _SESSION_FACTORY = None


def get_db_session() -> Iterator[Session]:
    """Yield a SQLAlchemy session for request-scoped dependencies."""

    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


async def get_current_admin(
    payload: AdminTokenPayload = Depends(get_admin_context),
    session: Session = Depends(get_db_session),
) -> AdminUser:
    """Resolve the signed-in :class:`~app.models.AdminUser`."""

    try:
        user_id = uuid.UUID(payload["user_id"])
    except (KeyError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identifier in token.",
        ) from exc

    user = session.get(AdminUser, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User is inactive or no longer exists.",
        )
    if str(user.tenant_id) != payload.get("tenant_id"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token tenant mismatch.",
        )
    return user


def highest_role(roles: list[str]) -> str | None:
    ranked = sorted({role for role in roles if role in ROLE_LEVELS}, key=ROLE_LEVELS.get)
    return ranked[-1] if ranked else None


def require_role(min_role: str) -> Callable[..., str]:
    """Create a dependency ensuring the caller has at least ``min_role``.

    The stored role of the admin user is authoritative; token claims cannot
    raise it.
    """

    if min_role not in ROLE_LEVELS:
        raise ValueError(f"Unknown role: {min_role}")

    async def dependency(user: AdminUser = Depends(get_current_admin)) -> str:
        role = highest_role([user.role])
        if role is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No roles assigned to user.",
            )
        if ROLE_LEVELS[role] < ROLE_LEVELS[min_role]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role.",
            )
        return role

    return dependency


__all__ = [
    "ROLE_LEVELS",
    "get_current_admin",
    "get_db_session",
    "get_session_factory",
    "highest_role",
    "require_role",
    "reset_session_factory",
]
