"""Admin sign-in routes."""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import AdminUser
from ..security import create_access_token, require_role, verify_password
from ..security.auth import get_current_admin, get_db_session

router = APIRouter(prefix="/api/auth", tags=["auth"])

logger = logging.getLogger(__name__)

SessionDep = Annotated[Session, Depends(get_db_session)]
ViewerRole = Annotated[str, Depends(require_role("viewer"))]
AdminDep = Annotated[AdminUser, Depends(get_current_admin)]


class LoginRequest(BaseModel):
    email: str
    password: str


class AdminPayload(BaseModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    email: str
    name: str
    role: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_at: dt.datetime
    user: AdminPayload


def _admin_payload(user: AdminUser) -> AdminPayload:
    return AdminPayload(
        id=user.id,
        tenant_id=user.tenant_id,
        email=user.email,
        name=user.name,
        role=user.role,
    )


@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, session: SessionDep) -> LoginResponse:
    """Exchange admin credentials for a dashboard access token."""

    email = payload.email.strip().lower()
    user = session.execute(
        select(AdminUser).where(AdminUser.email == email)
    ).scalar_one_or_none()
    if user is None or not verify_password(payload.password, user.password_hash):
        logger.info("Rejected admin login for %s", email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials."
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="User is inactive."
        )
    token, expires_at = create_access_token(user)
    return LoginResponse(
        access_token=token, expires_at=expires_at, user=_admin_payload(user)
    )


@router.get("/roles")
async def get_roles(role: ViewerRole) -> dict[str, str]:
    return {"role": role}


@router.get("/me", response_model=AdminPayload)
async def me(user: AdminDep) -> AdminPayload:
    return _admin_payload(user)
