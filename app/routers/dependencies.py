"""Request dependencies shared by the case routers."""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from ..cases.backends import build_repository_factory
from ..cases.service import CaseControllerRegistry, CaseLifecycleController
from ..classification import create_classifier
from ..core.settings import get_settings
from ..core.tenants import TenantDirectory, UnknownTenantError
from ..security.auth import get_session_factory

logger = logging.getLogger(__name__)

UNKNOWN_TENANT = "Unknown tenant"


def get_registry(request: Request) -> CaseControllerRegistry:
    """Return the process-wide controller registry, building it on first use."""

    registry = getattr(request.app.state, "case_registry", None)
    if registry is None:
        settings = get_settings()
        registry = CaseControllerRegistry(
            build_repository_factory(settings),
            classifier=create_classifier(settings),
            max_tenants=settings.max_cached_tenants,
        )
        request.app.state.case_registry = registry
    return registry


def _open_session():
    return get_session_factory()()


def get_tenant_directory(request: Request) -> TenantDirectory:
    """Return the directory used to vet anonymous tenant identifiers."""

    directory = getattr(request.app.state, "tenant_directory", None)
    if directory is None:
        settings = get_settings()
        allowed = list(settings.allowed_tenant_ids)
        if settings.default_tenant_id:
            allowed.append(settings.default_tenant_id)
        session_factory = _open_session if settings.tenant_database_url else None
        accept_any = (
            settings.case_backend == "memory"
            and not settings.allowed_tenant_ids
            and session_factory is None
        )
        if accept_any:
            logger.warning("No tenant directory configured; accepting any tenant id")
        directory = TenantDirectory(
            allowed=allowed,
            session_factory=session_factory,
            accept_any=accept_any,
        )
        request.app.state.tenant_directory = directory
    return directory


def resolve_public_tenant(request: Request) -> str:
    """Tenant of an anonymous request: ``X-Tenant-Id`` header or ``TENANT_ID``."""

    tenant = request.headers.get("X-Tenant-Id") or get_settings().default_tenant_id
    if not tenant or not tenant.strip():
        raise HTTPException(status_code=400, detail="Tenant identifier is required")
    try:
        return get_tenant_directory(request).resolve(tenant)
    except UnknownTenantError as exc:
        raise HTTPException(status_code=404, detail=UNKNOWN_TENANT) from exc


def public_controller(request: Request) -> CaseLifecycleController:
    return get_registry(request).for_tenant(resolve_public_tenant(request))
