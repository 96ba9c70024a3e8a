"""Select the case persistence backend from configuration."""

from __future__ import annotations

import logging
from collections.abc import Callable

from psycopg_pool import ConnectionPool

from app.core.settings import IntakeSettings

from .repository import (
    CaseRepository,
    InMemoryCaseRepository,
    PostgresCaseRepository,
    RestCaseRepository,
    ensure_schema,
)

logger = logging.getLogger(__name__)

RepositoryFactory = Callable[[str], CaseRepository]


def build_repository_factory(settings: IntakeSettings) -> RepositoryFactory:
    """Return a callable producing the repository for a tenant.

    Tenants share one backend resource: a single connection pool for
    PostgreSQL, a single HTTP session for REST, a single store in memory.
    """

    if settings.case_backend == "postgres":
        if not settings.database_url:
            raise RuntimeError("CASE_BACKEND=postgres requires DATABASE_URL")
        pool = ConnectionPool(
            settings.database_url,
            min_size=1,
            max_size=settings.database_pool_size,
            open=True,
        )
        with pool.connection() as conn:
            ensure_schema(conn)
        logger.info(
            "Using PostgreSQL case backend (pool size %d)", settings.database_pool_size
        )
        return lambda tenant_id: PostgresCaseRepository(pool=pool, tenant_id=tenant_id)

    if settings.case_backend == "rest":
        if not settings.rest_url:
            raise RuntimeError("CASE_BACKEND=rest requires CASE_REST_URL")
        repository = RestCaseRepository(
            settings.rest_url,
            api_key=settings.rest_api_key,
            table=settings.rest_table,
        )
        logger.info("Using REST case backend at %s", settings.rest_url)
        return lambda _tenant_id: repository

    shared = InMemoryCaseRepository()
    logger.info("Using in-memory case backend")
    return lambda _tenant_id: shared


__all__ = ["RepositoryFactory", "build_repository_factory"]
