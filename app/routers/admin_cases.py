"""Admin dashboard routes for triaging cases."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request

from ..cases import schemas
from ..cases.repository import CaseNotFoundError
from ..cases.service import CaseLifecycleController
from ..core.auth import AdminTokenPayload, get_admin_context
from ..security.auth import require_role
from .dependencies import get_registry

router = APIRouter(prefix="/api/admin/cases", tags=["admin"])

ViewerRole = Annotated[str, Depends(require_role("viewer"))]
OperatorRole = Annotated[str, Depends(require_role("operator"))]
TokenPayloadDep = Annotated[AdminTokenPayload, Depends(get_admin_context)]

_EXCLUDE_SECRETS = {"access_password"}


def _controller(request: Request, payload: TokenPayloadDep) -> CaseLifecycleController:
    return get_registry(request).for_tenant(str(payload["tenant_id"]))


ControllerDep = Annotated[CaseLifecycleController, Depends(_controller)]


@router.get("", response_model=schemas.CaseList)
def list_cases(
    role: ViewerRole,
    controller: ControllerDep,
    filter: schemas.DashboardFilter = "ALL",
    priority: schemas.Priority | None = None,
    intent: schemas.Intent | None = None,
    search: str | None = None,
) -> schemas.CaseList:
    items = controller.dashboard(
        view=filter, priority=priority, intent=intent, search=search
    )
    return schemas.CaseList(
        items=[schemas.summarize(case) for case in items], total=len(items)
    )


@router.get(
    "/{case_id}",
    response_model=schemas.Case,
    response_model_exclude=_EXCLUDE_SECRETS,
)
def get_case(case_id: str, role: ViewerRole, controller: ControllerDep) -> schemas.Case:
    try:
        return controller.get(case_id)
    except CaseNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post(
    "/{case_id}/replies",
    response_model=schemas.Case,
    response_model_exclude=_EXCLUDE_SECRETS,
)
def reply_to_case(
    case_id: str,
    payload: schemas.AdminReplyRequest,
    role: OperatorRole,
    controller: ControllerDep,
) -> schemas.Case:
    """Send a reply to the submitter; status defaults to ``IN_REVIEW``."""

    try:
        return controller.reply_as_admin(case_id, payload.message, payload.status)
    except CaseNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.patch(
    "/{case_id}/status",
    response_model=schemas.Case,
    response_model_exclude=_EXCLUDE_SECRETS,
)
def override_status(
    case_id: str,
    payload: schemas.StatusOverrideRequest,
    role: OperatorRole,
    controller: ControllerDep,
) -> schemas.Case:
    try:
        return controller.set_status(case_id, payload.status)
    except CaseNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
