"""Validation of tenant identifiers supplied by anonymous clients.

Public intake routes take the tenant from the ``X-Tenant-Id`` header. Only
tenants present in the ``tenants`` table, listed in ``ALLOWED_TENANT_IDS`` or
configured as ``TENANT_ID`` are accepted. A bare in-memory development setup
with none of those configured accepts any identifier.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import Tenant

logger = logging.getLogger(__name__)


class UnknownTenantError(LookupError):
    """Raised when a tenant identifier does not name a known tenant."""


class TenantDirectory:
    """Resolve public tenant identifiers to the id cases are stored under.

    A tenant found in the database resolves to its UUID, whether it was
    addressed by id or by slug. Resolved identifiers are cached; misses are
    not, so the cache never grows beyond the set of real tenants.
    """

    def __init__(
        self,
        *,
        allowed: Iterable[str] = (),
        session_factory: Callable[[], Session] | None = None,
        accept_any: bool = False,
    ) -> None:
        self._allowed = frozenset(value.strip() for value in allowed if value and value.strip())
        self._session_factory = session_factory
        self._accept_any = accept_any
        self._resolved: dict[str, str] = {}

    def resolve(self, value: str) -> str:
        candidate = (value or "").strip()
        if not candidate:
            raise UnknownTenantError("Tenant identifier is empty")
        cached = self._resolved.get(candidate)
        if cached is not None:
            return cached
        resolved = self._lookup(candidate)
        if resolved is None and candidate in self._allowed:
            resolved = candidate
        if resolved is None:
            if self._accept_any:
                return candidate
            raise UnknownTenantError(f"Unknown tenant: {candidate}")
        self._resolved[candidate] = resolved
        return resolved

    def _lookup(self, candidate: str) -> str | None:
        if self._session_factory is None:
            return None
        criteria = [Tenant.slug == candidate]
        try:
            criteria.append(Tenant.id == uuid.UUID(candidate))
        except ValueError:
            pass
        try:
            with self._session_factory() as session:
                tenant_id = session.scalars(
                    select(Tenant.id).where(or_(*criteria)).limit(1)
                ).first()
        except SQLAlchemyError:
            logger.exception("Tenant lookup failed")
            return None
        return str(tenant_id) if tenant_id is not None else None


__all__ = ["TenantDirectory", "UnknownTenantError"]
