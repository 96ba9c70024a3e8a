"""Persistence backends for intake cases.

Every backend stores a case as one "report" row: indexed ``category``,
``priority`` and ``status`` columns used for filtering plus an opaque
``description`` JSON document holding content, analysis, preview and history.
All implementations honour the same contract:

- ``create_case`` assigns the server timestamps;
- ``update_case`` is a partial merge and refreshes ``updated_at``;
- ``get_by_key`` returns ``None`` whenever key and password do not match,
  without revealing which of the two was wrong.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

import psycopg
import requests
from psycopg.errors import UniqueViolation
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from app.core.db import apply_tenant_settings

from . import schemas
from .keys import hash_access_password

logger = logging.getLogger(__name__)

DOCUMENT_FIELDS = frozenset({"content", "analysis", "admin_preview", "history"})
COLUMN_FIELDS = frozenset({"status"})
UPDATABLE_FIELDS = DOCUMENT_FIELDS | COLUMN_FIELDS


class CaseNotFoundError(RuntimeError):
    """Raised when a case key does not resolve to a stored case."""


class PersistenceError(RuntimeError):
    """Raised when a backend cannot complete an operation."""


class DuplicateCaseKeyError(PersistenceError):
    """Raised when a new case reuses a ``report_key`` that is already stored."""


class CaseRepository(Protocol):
    """Uniform four-method contract shared by all case stores."""

    def list_cases(self, tenant_id: str) -> List[schemas.Case]: ...

    def create_case(self, case: schemas.Case) -> schemas.Case: ...

    def update_case(self, key: str, fields: Mapping[str, Any]) -> schemas.Case: ...

    def get_by_key(self, key: str, password: str) -> Optional[schemas.Case]: ...


# Row shaping ------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def case_to_row(case: schemas.Case) -> Dict[str, Any]:
    """Collapse ``case`` into the report row persisted by every backend."""

    if not case.access_password:
        raise ValueError("A case needs an access password before it can be stored")
    return {
        "tenant_id": case.tenant_id,
        "report_key": case.submission_id,
        "password_hash": hash_access_password(case.access_password),
        "category": case.analysis.intent,
        "priority": case.analysis.priority,
        "status": case.status,
        "description": case.document(),
        "is_encrypted": False,
    }


def row_to_case(row: Mapping[str, Any]) -> schemas.Case:
    """Rebuild a :class:`~app.cases.schemas.Case` from a stored report row."""

    description = dict(row.get("description") or {})
    tenant_id = row.get("tenant_id")
    return schemas.Case(
        submission_id=row["report_key"],
        content=description["content"],
        analysis=description["analysis"],
        admin_preview=description.get("admin_preview", ""),
        history=description.get("history", []),
        status=row.get("status") or "RECEIVED",
        timestamp=row["created_at"],
        updated_at=row.get("updated_at"),
        tenant_id=str(tenant_id) if tenant_id is not None else None,
    )


def split_changes(fields: Mapping[str, Any]) -> tuple[Dict[str, Any], Dict[str, Any]]:
    """Split a partial update into column changes and document changes.

    Values may be pydantic models or plain JSON-compatible data. Changing the
    analysis also refreshes the mirrored ``category`` and ``priority``
    columns.
    """

    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported case fields: {', '.join(sorted(unknown))}")
    columns: Dict[str, Any] = {}
    document: Dict[str, Any] = {}
    for name, value in fields.items():
        plain = _to_json(value)
        if name in COLUMN_FIELDS:
            columns[name] = plain
        else:
            document[name] = plain
    analysis = document.get("analysis")
    if isinstance(analysis, dict):
        if "intent" in analysis:
            columns["category"] = analysis["intent"]
        if "priority" in analysis:
            columns["priority"] = analysis["priority"]
    return columns, document


def _to_json(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_to_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _to_json(item) for key, item in value.items()}
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _merge_row(row: Dict[str, Any], fields: Mapping[str, Any]) -> Dict[str, Any]:
    columns, document = split_changes(fields)
    merged = dict(row)
    merged.update(columns)
    description = dict(merged.get("description") or {})
    description.update(document)
    merged["description"] = description
    return merged


# In-memory --------------------------------------------------------------------


class InMemoryCaseRepository:
    """Process-local case store used for previews, development and tests."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None) -> None:
        self._rows: List[Dict[str, Any]] = list(rows or [])

    def list_cases(self, tenant_id: str) -> List[schemas.Case]:
        rows = [row for row in self._rows if row.get("tenant_id") == tenant_id]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [row_to_case(copy.deepcopy(row)) for row in rows]

    def create_case(self, case: schemas.Case) -> schemas.Case:
        now = _utcnow()
        row = case_to_row(case)
        if any(existing["report_key"] == row["report_key"] for existing in self._rows):
            raise DuplicateCaseKeyError(f"Case key {row['report_key']} already exists")
        row.update({"id": uuid.uuid4(), "created_at": now, "updated_at": now})
        self._rows.append(row)
        return row_to_case(copy.deepcopy(row))

    def update_case(self, key: str, fields: Mapping[str, Any]) -> schemas.Case:
        for index, row in enumerate(self._rows):
            if row["report_key"] == key:
                break
        else:
            raise CaseNotFoundError(f"Case {key} not found")
        updated = _merge_row(row, fields)
        updated["updated_at"] = _utcnow()
        self._rows[index] = updated
        return row_to_case(copy.deepcopy(updated))

    def get_by_key(self, key: str, password: str) -> Optional[schemas.Case]:
        password_hash = hash_access_password(password)
        for row in self._rows:
            if row["report_key"] == key and row["password_hash"] == password_hash:
                return row_to_case(copy.deepcopy(row))
        return None


# PostgreSQL -------------------------------------------------------------------

REPORTS_DDL = """
CREATE TABLE IF NOT EXISTS reports (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    tenant_id TEXT,
    report_key TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    category TEXT NOT NULL,
    priority TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'RECEIVED',
    description JSONB NOT NULL,
    is_encrypted BOOLEAN NOT NULL DEFAULT false,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS ix_reports_tenant_created ON reports (tenant_id, created_at DESC);
CREATE INDEX IF NOT EXISTS ix_reports_category ON reports (category);
CREATE INDEX IF NOT EXISTS ix_reports_priority ON reports (priority);
CREATE INDEX IF NOT EXISTS ix_reports_status ON reports (status);
"""


def ensure_schema(conn: psycopg.Connection) -> None:
    """Create the ``reports`` table and its indexes when missing."""

    with conn.cursor() as cur:
        cur.execute(REPORTS_DDL)
    conn.commit()


class PostgresCaseRepository:
    """PostgreSQL implementation of :class:`CaseRepository`.

    Either a single connection or a ``psycopg_pool.ConnectionPool`` shared by
    every tenant may back the repository. Pooled connections get the tenant
    session setting applied each time they are checked out.
    """

    def __init__(
        self,
        conn: Optional[psycopg.Connection] = None,
        tenant_id: Optional[str] = None,
        *,
        pool: Optional[ConnectionPool] = None,
    ) -> None:
        if (conn is None) == (pool is None):
            raise ValueError("Provide exactly one of conn or pool")
        self._conn = conn
        self._pool = pool
        self._tenant_id = tenant_id
        if conn is not None and tenant_id is not None:
            apply_tenant_settings(conn, tenant_id)

    @contextmanager
    def _connection(self, action: str) -> Iterator[psycopg.Connection]:
        try:
            if self._pool is None:
                try:
                    yield self._conn
                except psycopg.Error:
                    self._conn.rollback()
                    raise
            else:
                with self._pool.connection() as conn:
                    if self._tenant_id is not None:
                        apply_tenant_settings(conn, self._tenant_id)
                    yield conn
        except UniqueViolation as exc:
            logger.warning("Postgres case store rejected duplicate key: %s", exc)
            raise DuplicateCaseKeyError(f"Failed to {action}: {exc}") from exc
        except psycopg.Error as exc:
            logger.warning("Postgres case store failed to %s: %s", action, exc)
            raise PersistenceError(f"Failed to {action}: {exc}") from exc

    def list_cases(self, tenant_id: str) -> List[schemas.Case]:
        with self._connection("list cases") as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT * FROM reports
                WHERE tenant_id = %s
                ORDER BY created_at DESC
                """,
                (tenant_id,),
            )
            rows = cur.fetchall()
        return [row_to_case(row) for row in rows]

    def create_case(self, case: schemas.Case) -> schemas.Case:
        row = case_to_row(case)
        with self._connection("create case") as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    INSERT INTO reports (
                        tenant_id, report_key, password_hash, category, priority,
                        status, description, is_encrypted, created_at, updated_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, now(), now())
                    RETURNING *
                    """,
                    (
                        row["tenant_id"],
                        row["report_key"],
                        row["password_hash"],
                        row["category"],
                        row["priority"],
                        row["status"],
                        Jsonb(row["description"]),
                        row["is_encrypted"],
                    ),
                )
                created = cur.fetchone()
            conn.commit()
        return row_to_case(created)

    def update_case(self, key: str, fields: Mapping[str, Any]) -> schemas.Case:
        columns, document = split_changes(fields)
        assignments: List[str] = []
        values: List[Any] = []
        for name, value in columns.items():
            assignments.append(f"{name} = %s")
            values.append(value)
        if document:
            assignments.append("description = description || %s")
            values.append(Jsonb(document))
        assignments.append("updated_at = now()")
        values.append(key)
        query = (
            "UPDATE reports SET "
            f"{', '.join(assignments)} "
            "WHERE report_key = %s RETURNING *"
        )
        with self._connection("update case") as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, values)
                row = cur.fetchone()
            if not row:
                conn.rollback()
                raise CaseNotFoundError(f"Case {key} not found")
            conn.commit()
        return row_to_case(row)

    def get_by_key(self, key: str, password: str) -> Optional[schemas.Case]:
        with self._connection("look up case") as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT * FROM reports
                WHERE report_key = %s AND password_hash = %s
                LIMIT 1
                """,
                (key, hash_access_password(password)),
            )
            row = cur.fetchone()
        if not row:
            return None
        return row_to_case(row)


# REST (PostgREST / Supabase compatible) ---------------------------------------


class RestCaseRepository:
    """Store cases in a hosted ``reports`` table through its REST interface."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        table: str = "reports",
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ) -> None:
        if not base_url:
            raise ValueError("REST case backend requires a base URL")
        self._endpoint = f"{base_url.rstrip('/')}/{table}"
        self._session = session or requests.Session()
        self._timeout = timeout
        self._headers: Dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            self._headers["apikey"] = api_key
            self._headers["Authorization"] = f"Bearer {api_key}"

    def _request(
        self,
        method: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            response = self._session.request(
                method,
                self._endpoint,
                params=params,
                json=json,
                headers=headers,
                timeout=self._timeout,
            )
            if response.status_code == 409:
                logger.warning("REST case store reported a conflicting case key")
                raise DuplicateCaseKeyError(f"{method} {self._endpoint} conflicts with a stored case")
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("REST case store request %s failed: %s", method, exc)
            raise PersistenceError(f"{method} {self._endpoint} failed: {exc}") from exc
        payload = response.json()
        if isinstance(payload, dict):
            return [payload]
        return list(payload or [])

    def _fetch_row(self, key: str) -> Optional[Dict[str, Any]]:
        rows = self._request(
            "GET",
            params={"select": "*", "report_key": f"eq.{key}", "limit": "1"},
        )
        return rows[0] if rows else None

    def list_cases(self, tenant_id: str) -> List[schemas.Case]:
        rows = self._request(
            "GET",
            params={
                "select": "*",
                "tenant_id": f"eq.{tenant_id}",
                "order": "created_at.desc",
            },
        )
        return [row_to_case(row) for row in rows]

    def create_case(self, case: schemas.Case) -> schemas.Case:
        row = case_to_row(case)
        rows = self._request("POST", json=row, prefer="return=representation")
        if not rows:
            raise PersistenceError("REST backend returned no row for created case")
        return row_to_case(rows[0])

    def update_case(self, key: str, fields: Mapping[str, Any]) -> schemas.Case:
        current = self._fetch_row(key)
        if current is None:
            raise CaseNotFoundError(f"Case {key} not found")
        merged = _merge_row(current, fields)
        columns, _ = split_changes(fields)
        body: Dict[str, Any] = dict(columns)
        body["description"] = merged["description"]
        body["updated_at"] = _utcnow().isoformat()
        rows = self._request(
            "PATCH",
            params={"report_key": f"eq.{key}"},
            json=body,
            prefer="return=representation",
        )
        if not rows:
            raise CaseNotFoundError(f"Case {key} not found")
        return row_to_case(rows[0])

    def get_by_key(self, key: str, password: str) -> Optional[schemas.Case]:
        rows = self._request(
            "GET",
            params={
                "select": "*",
                "report_key": f"eq.{key}",
                "password_hash": f"eq.{hash_access_password(password)}",
                "limit": "1",
            },
        )
        if not rows:
            return None
        return row_to_case(rows[0])


__all__ = [
    "CaseNotFoundError",
    "CaseRepository",
    "DuplicateCaseKeyError",
    "InMemoryCaseRepository",
    "PersistenceError",
    "PostgresCaseRepository",
    "RestCaseRepository",
    "case_to_row",
    "ensure_schema",
    "row_to_case",
    "split_changes",
]
