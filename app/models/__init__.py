"""SQLAlchemy declarative base and admin-facing models.

Tenants own cases and the admin users allowed to triage them. Case data
itself is not mapped here: it lives in the ``reports`` table managed by
:mod:`app.cases.repository`.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


from .tenant import AdminUser, Tenant


__all__ = [
    "AdminUser",
    "Base",
    "Tenant",
]
