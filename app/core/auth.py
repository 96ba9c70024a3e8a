"""Bearer token validation for the admin dashboard."""

from __future__ import annotations

import os
from typing import cast

from typing_extensions import TypedDict

import jwt
from fastapi import HTTPException, Request, status
from jwt import ExpiredSignatureError, InvalidTokenError

__all__ = [
    "AdminTokenPayload",
    "TokenConfigurationError",
    "TokenValidationError",
    "decode_admin_token",
    "get_admin_context",
    "read_bearer_token",
]


class TokenConfigurationError(RuntimeError):
    """Raised when the token signing configuration is incomplete."""


class TokenValidationError(ValueError):
    """Raised when a presented token cannot be validated."""


class _AdminTokenRequiredClaims(TypedDict):
    tenant_id: str
    user_id: str


class AdminTokenPayload(_AdminTokenRequiredClaims, total=False):
    """Decoded JWT payload of a signed-in admin."""

    aud: str | list[str]
    email: str
    exp: int
    iat: int
    iss: str
    name: str
    roles: list[str]
    type: str


def _get_env(name: str, *, required: bool = True, default: str | None = None) -> str:
    """Read ``name`` from the environment.

    Raises:
        TokenConfigurationError: If ``required`` and the variable is blank.
    """

    value = os.getenv(name, default)
    if required and (value is None or not value.strip()):
        raise TokenConfigurationError(
            f"Environment variable '{name}' must be set for admin token validation.",
        )
    return "" if value is None else value.strip()


def decode_admin_token(token: str) -> AdminTokenPayload:
    """Decode and validate an admin access token.

    Raises:
        TokenConfigurationError: If signing configuration is missing.
        TokenValidationError: If signature, claims or expiry are invalid.
    """

    secret_key = _get_env("ADMIN_TOKEN_SECRET")
    audience = _get_env("ADMIN_TOKEN_AUDIENCE")
    issuer = _get_env("ADMIN_TOKEN_ISSUER")
    algorithm = _get_env("ADMIN_TOKEN_ALGORITHM", required=False, default="HS256")

    try:
        payload = jwt.decode(
            token,
            secret_key,
            algorithms=[algorithm],
            audience=audience,
            issuer=issuer,
            options={"require": ["exp", "aud", "iss"]},
        )
    except ExpiredSignatureError as exc:
        raise TokenValidationError("Admin token has expired.") from exc
    except InvalidTokenError as exc:
        raise TokenValidationError("Admin token is invalid.") from exc

    if "tenant_id" not in payload or "user_id" not in payload:
        raise TokenValidationError(
            "Admin token payload must include 'tenant_id' and 'user_id'.",
        )
    if payload.get("type", "access") != "access":
        raise TokenValidationError("Admin token must be an access token.")

    return cast(AdminTokenPayload, payload)


def read_bearer_token(request: Request) -> str:
    """Return the credentials of a ``Bearer`` ``Authorization`` header.

    Raises:
        HTTPException: ``401`` when the header is missing or malformed.
    """

    authorization = request.headers.get("Authorization")
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    scheme, _, credentials = authorization.partition(" ")
    if not credentials or scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header must use Bearer scheme.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials


async def get_admin_context(request: Request) -> AdminTokenPayload:
    """FastAPI dependency returning the validated admin token payload."""

    credentials = read_bearer_token(request)
    try:
        return decode_admin_token(credentials)
    except TokenConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    except TokenValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
