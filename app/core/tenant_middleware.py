"""Middleware wiring the admin tenant context into each protected request."""

from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .auth import get_admin_context
from .tenant_context import reset_tenant_context, set_tenant_context

__all__ = ["TenantContextMiddleware", "PROTECTED_PREFIXES"]

logger = logging.getLogger(__name__)

PROTECTED_PREFIXES: tuple[str, ...] = ("/api/admin", "/api/auth/roles", "/api/auth/me")


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Require a valid admin token on dashboard routes and record its tenant.

    Public intake routes (submission, status lookup, user replies) and the
    login endpoint pass through untouched. The middleware stays inactive
    until token signing is configured, so a bare development setup still
    serves the public API.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        if not self._is_configured() or not self._is_protected(request):
            return await call_next(request)

        try:
            payload = await get_admin_context(request)
        except HTTPException as exc:
            headers = dict(exc.headers or {})
            if exc.status_code == status.HTTP_401_UNAUTHORIZED:
                headers.setdefault("WWW-Authenticate", "Bearer")
            logger.debug("Rejected %s %s: %s", request.method, request.url.path, exc.detail)
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail},
                headers=headers or None,
            )

        request.state.tenant_id = payload["tenant_id"]
        request.state.user_id = payload["user_id"]
        context_token = set_tenant_context(payload["tenant_id"], payload["user_id"])
        try:
            return await call_next(request)
        finally:
            reset_tenant_context(context_token)

    @staticmethod
    def _is_configured() -> bool:
        required = (
            os.getenv("ADMIN_TOKEN_SECRET"),
            os.getenv("ADMIN_TOKEN_AUDIENCE"),
            os.getenv("ADMIN_TOKEN_ISSUER"),
        )
        return all(required)

    @staticmethod
    def _is_protected(request: Request) -> bool:
        if request.method.upper() == "OPTIONS":
            return False
        return request.url.path.startswith(PROTECTED_PREFIXES)
