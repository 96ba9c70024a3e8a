"""Issuing signed access tokens for dashboard sessions."""

from __future__ import annotations

import dataclasses
import datetime as dt
import os
from functools import lru_cache
from typing import Any

import jwt

from app.models import AdminUser


@dataclasses.dataclass(frozen=True)
class JWTSettings:
    """Runtime configuration for issuing admin access tokens."""

    secret: str
    issuer: str
    audience: str
    algorithm: str = "HS256"
    access_token_ttl_seconds: int = 60 * 60 * 8  # one working day


@lru_cache(maxsize=1)
def get_jwt_settings() -> JWTSettings:
    """Load token settings from the environment."""

    secret = os.getenv("ADMIN_TOKEN_SECRET")
    issuer = os.getenv("ADMIN_TOKEN_ISSUER")
    audience = os.getenv("ADMIN_TOKEN_AUDIENCE")
    if not secret or not issuer or not audience:
        raise RuntimeError(
            "ADMIN_TOKEN_SECRET, ADMIN_TOKEN_ISSUER and ADMIN_TOKEN_AUDIENCE must be set.",
        )
    return JWTSettings(
        secret=secret,
        issuer=issuer,
        audience=audience,
        algorithm=os.getenv("ADMIN_TOKEN_ALGORITHM", "HS256"),
        access_token_ttl_seconds=int(
            os.getenv("ACCESS_TOKEN_TTL_SECONDS", str(60 * 60 * 8))
        ),
    )


def reset_jwt_settings_cache() -> None:
    """Clear cached JWT settings; useful in tests when env vars change."""

    get_jwt_settings.cache_clear()


def create_access_token(
    user: AdminUser, *, settings: JWTSettings | None = None
) -> tuple[str, dt.datetime]:
    """Issue a signed JWT for ``user`` and return it with its expiry."""

    settings = settings or get_jwt_settings()
    now = dt.datetime.now(dt.timezone.utc)
    expires_at = now + dt.timedelta(seconds=settings.access_token_ttl_seconds)
    payload: dict[str, Any] = {
        "tenant_id": str(user.tenant_id),
        "user_id": str(user.id),
        "email": user.email,
        "name": user.name,
        "roles": [user.role] if user.role else [],
        "iss": settings.issuer,
        "aud": settings.audience,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
        "type": "access",
    }
    token = jwt.encode(payload, settings.secret, algorithm=settings.algorithm)
    return str(token), expires_at


__all__ = [
    "JWTSettings",
    "create_access_token",
    "get_jwt_settings",
    "reset_jwt_settings_cache",
]
