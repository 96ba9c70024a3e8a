"""Admin authentication helpers."""

from .auth import get_current_admin, require_role
from .passwords import hash_password, verify_password
from .tokens import (
    JWTSettings,
    create_access_token,
    get_jwt_settings,
    reset_jwt_settings_cache,
)

__all__ = [
    "JWTSettings",
    "create_access_token",
    "get_current_admin",
    "get_jwt_settings",
    "hash_password",
    "require_role",
    "reset_jwt_settings_cache",
    "verify_password",
]
