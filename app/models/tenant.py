"""Tenant and admin user models.

A tenant is the organization receiving anonymous reports. Admin users belong
to exactly one tenant and sign in to the dashboard; their role decides
whether they may only read cases (``viewer``) or also reply and change
statuses (``operator`` and ``admin``).
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import List

from sqlalchemy import DateTime, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base


def _utcnow() -> dt.datetime:
    """Return the current UTC timestamp with timezone awareness."""

    return dt.datetime.now(dt.timezone.utc)


class Tenant(Base):
    """Organization receiving reports.

    Attributes:
        id: Primary key generated via ``gen_random_uuid`` in Postgres.
        name: Display name of the tenant.
        slug: Unique short name used in URLs and seed scripts.
        plan: Subscription tier.
        admins: Admin users that belong to this tenant.
    """

    __tablename__ = "tenants"
    __table_args__ = (Index("ix_tenants_slug_unique", "slug", unique=True),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    slug: Mapped[str] = mapped_column(String(length=255), nullable=False)
    plan: Mapped[str] = mapped_column(
        String(length=64),
        nullable=False,
        default="free",
        server_default=text("'free'"),
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    admins: Mapped[List["AdminUser"]] = relationship(
        back_populates="tenant",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class AdminUser(Base):
    """Dashboard user allowed to triage a tenant's cases."""

    __tablename__ = "admin_users"
    __table_args__ = (
        Index("ix_admin_users_email_unique", "email", unique=True),
        Index("ix_admin_users_tenant_id", "tenant_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(String(length=320), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(length=255), nullable=False)
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(length=32),
        nullable=False,
        default="viewer",
        server_default=text("'viewer'"),
    )
    is_active: Mapped[bool] = mapped_column(
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    tenant: Mapped[Tenant] = relationship(back_populates="admins", lazy="joined")


__all__ = ["AdminUser", "Tenant"]
