"""Pydantic schemas describing anonymous intake cases."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, get_args

from pydantic import BaseModel, Field

CaseStatus = Literal["RECEIVED", "IN_REVIEW", "ACTION_REQUIRED", "RESOLVED"]
SenderRole = Literal["USER", "ADMIN"]
Intent = Literal[
    "Bug Report",
    "Feature Request",
    "General Praise",
    "Complaint",
    "Other",
    "General",
]
Priority = Literal["Low", "Medium", "High", "Urgent"]
DashboardFilter = Literal["ALL", "URGENT", "HIGH", "BUG"]

CASE_STATUSES: tuple[str, ...] = get_args(CaseStatus)
INTENTS: tuple[str, ...] = get_args(Intent)
PRIORITIES: tuple[str, ...] = get_args(Priority)


class SubmissionContent(BaseModel):
    subject_line: str
    original_message: str
    summary: str
    topics: list[str] = Field(default_factory=list)


class SubmissionAnalysis(BaseModel):
    intent: Intent
    priority: Priority
    sentiment_score: float = Field(ge=-1.0, le=1.0)
    requires_developer_intervention: bool = False


class CaseHistoryItem(BaseModel):
    """A single message in the case conversation."""

    id: str
    sender: SenderRole
    message: str
    timestamp: datetime


class Case(BaseModel):
    """A classified submission tracked through its lifecycle.

    ``content``, ``analysis``, ``admin_preview`` and ``history`` are stored by
    the persistence backends as one opaque JSON document; ``status``,
    ``analysis.intent`` and ``analysis.priority`` are mirrored into indexed
    columns for filtering.
    """

    submission_id: str
    access_password: str | None = None
    content: SubmissionContent
    analysis: SubmissionAnalysis
    admin_preview: str
    timestamp: datetime
    status: CaseStatus = "RECEIVED"
    history: list[CaseHistoryItem] = Field(default_factory=list)
    tenant_id: str | None = None
    updated_at: datetime | None = None

    def document(self) -> dict[str, Any]:
        """Return the JSON blob persisted alongside the indexed columns."""

        return self.model_dump(
            mode="json",
            include={"content", "analysis", "admin_preview", "history"},
        )


class CaseStatusView(BaseModel):
    """Read-only case view returned to anonymous submitters."""

    submission_id: str
    subject_line: str
    status: CaseStatus
    timestamp: datetime
    history: list[CaseHistoryItem]

    @classmethod
    def from_case(cls, case: Case) -> "CaseStatusView":
        return cls(
            submission_id=case.submission_id,
            subject_line=case.content.subject_line,
            status=case.status,
            timestamp=case.timestamp,
            history=list(case.history),
        )


class CaseReceipt(Case):
    """Response returned once after a successful submission.

    This is the only place the plain access password leaves the service.
    """


class CaseSummary(BaseModel):
    submission_id: str
    subject_line: str
    admin_preview: str
    intent: Intent
    priority: Priority
    sentiment_score: float
    status: CaseStatus
    timestamp: datetime
    messages: int


class CaseList(BaseModel):
    items: list[CaseSummary]
    total: int


class StatusLookupRequest(BaseModel):
    case_id: str
    password: str


class UserReplyRequest(BaseModel):
    password: str
    message: str


class AdminReplyRequest(BaseModel):
    message: str
    status: CaseStatus | None = None


class StatusOverrideRequest(BaseModel):
    status: CaseStatus


def summarize(case: Case) -> CaseSummary:
    return CaseSummary(
        submission_id=case.submission_id,
        subject_line=case.content.subject_line,
        admin_preview=case.admin_preview,
        intent=case.analysis.intent,
        priority=case.analysis.priority,
        sentiment_score=case.analysis.sentiment_score,
        status=case.status,
        timestamp=case.timestamp,
        messages=len(case.history),
    )
