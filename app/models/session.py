"""Engine and session helpers for the admin account tables."""

from __future__ import annotations

import os
import uuid
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from . import Base


def as_sqlalchemy_url(db_url: str) -> str:
    """Return ``db_url`` using the ``psycopg`` driver for Postgres URLs."""

    if db_url.startswith("postgresql://"):
        return db_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return db_url


def get_engine(database_url: str | None = None, **kwargs: object) -> Engine:
    """Create a SQLAlchemy engine for ``database_url`` or ``ADMIN_DATABASE_URL``.

    ``DATABASE_URL`` is used when no dedicated admin database is configured.
    SQLite engines get a ``gen_random_uuid`` function so server defaults
    behave as on Postgres.
    """

    url = database_url or os.getenv("ADMIN_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not configured.")

    engine = create_engine(as_sqlalchemy_url(url), **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _configure_sqlite(dbapi_connection, _connection_record):  # pragma: no cover - dialect hook
            dbapi_connection.create_function("gen_random_uuid", 0, lambda: str(uuid.uuid4()))
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

    return engine


def get_sessionmaker(database_url: str | None = None, **kwargs: object) -> sessionmaker[Session]:
    """Return a session factory bound to the configured engine."""

    engine = get_engine(database_url=database_url, **kwargs)
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


def create_tables(engine: Engine) -> None:
    """Create the tenant and admin tables when missing."""

    Base.metadata.create_all(engine)


@contextmanager
def session_scope(database_url: str | None = None, **kwargs: object) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    factory = get_sessionmaker(database_url=database_url, **kwargs)
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "Base",
    "as_sqlalchemy_url",
    "create_tables",
    "get_engine",
    "get_sessionmaker",
    "session_scope",
]
