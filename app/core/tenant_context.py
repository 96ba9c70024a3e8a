"""Request-scoped record of the tenant being served.

The admin middleware stores the tenant and user of a validated token here so
that repositories and services can find out which tenant they act for
without access to the request object. Public endpoints never populate it;
they resolve the tenant from the ``X-Tenant-Id`` header or ``TENANT_ID``.
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from typing import TypedDict

__all__ = [
    "TenantRuntimeContext",
    "get_current_tenant_id",
    "get_current_user_id",
    "reset_tenant_context",
    "set_tenant_context",
]


class TenantRuntimeContext(TypedDict):
    tenant_id: str
    user_id: str


_tenant_context: ContextVar[TenantRuntimeContext | None] = ContextVar(
    "tenant_runtime_context", default=None
)


def set_tenant_context(tenant_id: str, user_id: str) -> Token[TenantRuntimeContext | None]:
    """Store tenant and user; pass the returned token to :func:`reset_tenant_context`."""

    return _tenant_context.set({"tenant_id": tenant_id, "user_id": user_id})


def reset_tenant_context(token: Token[TenantRuntimeContext | None]) -> None:
    _tenant_context.reset(token)


def get_current_tenant_id() -> str | None:
    context = _tenant_context.get()
    return None if context is None else context["tenant_id"]


def get_current_user_id() -> str | None:
    context = _tenant_context.get()
    return None if context is None else context["user_id"]
