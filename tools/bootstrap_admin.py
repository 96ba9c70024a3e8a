"""Utility CLI to provision a tenant and its first dashboard admin."""

from __future__ import annotations

import argparse
import logging
import os

import psycopg
from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import Session

from app.cases.repository import ensure_schema
from app.models import AdminUser, Tenant
from app.models.session import as_sqlalchemy_url, create_tables, get_engine
from app.security import hash_password

logger = logging.getLogger("tools.bootstrap_admin")

DEFAULT_TENANT_NAME = "Acme Corp"
DEFAULT_TENANT_SLUG = "acme"
DEFAULT_ADMIN_NAME = "Compliance Officer"
DEFAULT_ADMIN_EMAIL = "admin@example.com"
DEFAULT_ADMIN_ROLE = "admin"


def _safe_url(db_url: str) -> str:
    """Return ``db_url`` with any password redacted for logging."""

    try:
        parsed = make_url(db_url)
    except ArgumentError:
        return db_url
    if parsed.password is None:
        return db_url
    return parsed.set(password="***").render_as_string(hide_password=False)


def ensure_admin_entities(
    session: Session,
    *,
    admin_password: str,
    tenant_name: str = DEFAULT_TENANT_NAME,
    tenant_slug: str = DEFAULT_TENANT_SLUG,
    admin_name: str = DEFAULT_ADMIN_NAME,
    admin_email: str = DEFAULT_ADMIN_EMAIL,
    admin_role: str = DEFAULT_ADMIN_ROLE,
) -> tuple[Tenant, AdminUser, bool, bool]:
    """Ensure the tenant and admin user exist in ``session``.

    Existing rows are looked up by slug and e-mail and left untouched; the
    password of an existing admin is never reset.

    Returns:
        Tuple of the tenant, the admin user, and two booleans indicating
        whether each of them was created.
    """

    slug = tenant_slug.strip().lower()
    email = admin_email.strip().lower()
    created_tenant = False
    created_admin = False

    tenant = session.execute(
        select(Tenant).where(Tenant.slug == slug)
    ).scalar_one_or_none()
    if tenant is None:
        tenant = Tenant(name=tenant_name.strip(), slug=slug)
        session.add(tenant)
        session.flush()
        created_tenant = True
        logger.info("Created tenant %s (id=%s)", tenant.slug, tenant.id)
    else:
        logger.info("Tenant %s already exists (id=%s)", tenant.slug, tenant.id)

    admin = session.execute(
        select(AdminUser).where(AdminUser.email == email)
    ).scalar_one_or_none()
    if admin is None:
        admin = AdminUser(
            tenant_id=tenant.id,
            email=email,
            name=admin_name.strip(),
            password_hash=hash_password(admin_password),
            role=admin_role,
        )
        session.add(admin)
        session.flush()
        created_admin = True
        logger.info("Created admin %s (id=%s)", admin.email, admin.id)
    else:
        logger.info("Admin %s already exists (id=%s)", admin.email, admin.id)

    return tenant, admin, created_tenant, created_admin


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--tenant-name", default=DEFAULT_TENANT_NAME)
    parser.add_argument("--tenant-slug", default=DEFAULT_TENANT_SLUG)
    parser.add_argument("--admin-name", default=DEFAULT_ADMIN_NAME)
    parser.add_argument("--admin-email", default=DEFAULT_ADMIN_EMAIL)
    parser.add_argument(
        "--admin-role", default=DEFAULT_ADMIN_ROLE, choices=("viewer", "operator", "admin")
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Script entrypoint; the admin password is read from ``ADMIN_PASSWORD``."""

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = _parse_args(argv)

    db_url = os.getenv("ADMIN_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not db_url:
        raise RuntimeError("DATABASE_URL environment variable is required")
    password = os.getenv("ADMIN_PASSWORD")
    if not password:
        raise RuntimeError("ADMIN_PASSWORD environment variable is required")

    logger.info("Ensuring schema on %s", _safe_url(db_url))
    if os.getenv("CASE_BACKEND", "memory").strip().lower() == "postgres":
        with psycopg.connect(os.environ["DATABASE_URL"]) as conn:
            ensure_schema(conn)

    engine = get_engine(as_sqlalchemy_url(db_url))
    create_tables(engine)

    with Session(engine, expire_on_commit=False) as session:
        tenant, admin, created_tenant, created_admin = ensure_admin_entities(
            session,
            admin_password=password,
            tenant_name=args.tenant_name,
            tenant_slug=args.tenant_slug,
            admin_name=args.admin_name,
            admin_email=args.admin_email,
            admin_role=args.admin_role,
        )
        session.commit()

    logger.info("Tenant %s (%s, id=%s)", "created" if created_tenant else "existing", tenant.slug, tenant.id)
    logger.info("Admin %s (%s)", "created" if created_admin else "existing", admin.email)


if __name__ == "__main__":  # pragma: no cover - CLI execution
    main()
