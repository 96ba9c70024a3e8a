"""Public intake routes: anonymous submission, status lookup and replies."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from starlette.concurrency import run_in_threadpool

from ..cases import schemas
from ..cases.repository import CaseNotFoundError, DuplicateCaseKeyError
from ..cases.service import CaseLifecycleController
from ..classification import (
    Attachment,
    AttachmentRejectedError,
    ClassificationError,
    validate_attachment,
)
from ..core.limits import limiter, lookup_limit, submission_limit
from ..core.settings import get_settings
from .dependencies import public_controller

router = APIRouter(prefix="/api/cases", tags=["cases"])

logger = logging.getLogger(__name__)

SUBMISSION_FAILED = "Failed to process your message. Please try again."
INVALID_CREDENTIALS = "Invalid Case ID or Password."
MISSING_CREDENTIALS = "Please enter both Case ID and Password"

ControllerDep = Annotated[CaseLifecycleController, Depends(public_controller)]


async def _read_attachment(upload: UploadFile | None) -> Attachment | None:
    if upload is None or not upload.filename:
        return None
    settings = get_settings()
    data = await upload.read()
    attachment = Attachment(
        data=data,
        mime_type=upload.content_type or "application/octet-stream",
        filename=upload.filename,
    )
    try:
        return validate_attachment(
            attachment,
            max_size=settings.upload_max_size,
            allowed_types=settings.upload_allowed_mime_types,
        )
    except AttachmentRejectedError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post(
    "",
    response_model=schemas.CaseReceipt,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(submission_limit)
async def submit_case(
    request: Request,
    controller: ControllerDep,
    message: Annotated[str, Form()],
    attachment: Annotated[UploadFile | None, File()] = None,
) -> schemas.CaseReceipt:
    """Classify an anonymous message and open a case for it.

    The response carries the case key and the access password; the password
    is never returned again.
    """

    if not message.strip():
        raise HTTPException(status_code=400, detail="Message must not be empty")
    if len(message) > get_settings().max_message_length:
        raise HTTPException(status_code=400, detail="Message too long")
    prepared = await _read_attachment(attachment)
    try:
        case = await run_in_threadpool(controller.submit, message, prepared)
    except ClassificationError as exc:
        logger.warning("Submission failed: %s", exc)
        raise HTTPException(status_code=502, detail=SUBMISSION_FAILED) from exc
    except DuplicateCaseKeyError as exc:
        logger.error("Submission failed: %s", exc)
        raise HTTPException(status_code=502, detail=SUBMISSION_FAILED) from exc
    return schemas.CaseReceipt(**case.model_dump())


@router.post("/status", response_model=schemas.CaseStatusView)
@limiter.limit(lookup_limit)
def check_status(
    request: Request,
    payload: schemas.StatusLookupRequest,
    controller: ControllerDep,
) -> schemas.CaseStatusView:
    """Return the read-only view of a case for its key and access password."""

    if not payload.case_id.strip() or not payload.password.strip():
        raise HTTPException(status_code=400, detail=MISSING_CREDENTIALS)
    case = controller.lookup(payload.case_id, payload.password)
    if case is None:
        raise HTTPException(status_code=404, detail=INVALID_CREDENTIALS)
    return schemas.CaseStatusView.from_case(case)


@router.post("/{case_id}/replies", response_model=schemas.CaseStatusView)
@limiter.limit(lookup_limit)
def reply_to_case(
    request: Request,
    case_id: str,
    payload: schemas.UserReplyRequest,
    controller: ControllerDep,
) -> schemas.CaseStatusView:
    """Append a submitter reply; the case is flagged ``ACTION_REQUIRED``."""

    if controller.lookup(case_id, payload.password) is None:
        raise HTTPException(status_code=404, detail=INVALID_CREDENTIALS)
    try:
        case = controller.reply_as_user(case_id, payload.message)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CaseNotFoundError as exc:
        raise HTTPException(status_code=404, detail=INVALID_CREDENTIALS) from exc
    return schemas.CaseStatusView.from_case(case)
