"""Classification adapter turning a raw submission into a :class:`Case`.

The adapter wraps a single structured-output call to the OpenAI Chat
Completions API. The model decides subject, summary, topics, intent,
priority and sentiment; everything that must hold regardless of the model's
output (key length, password, status, seeded history) is enforced here after
the call returns.

When no API key is configured the adapter falls back to the keyword rules in
:mod:`app.classification.heuristics` so the service remains usable in
development and CI. Errors raised by a configured client are never masked:
they surface as :class:`ClassificationError` and the submission fails.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from app.cases import keys, schemas
from app.core.settings import IntakeSettings

from .attachments import Attachment, extract_pdf_text
from .heuristics import classify_by_keywords
from .prompts import RESPONSE_FORMAT, SYSTEM_INSTRUCTION

logger = logging.getLogger(__name__)


class ClassificationError(RuntimeError):
    """Raised when a submission could not be classified."""


class Classifier(Protocol):
    def classify(
        self,
        message: str,
        attachment: Attachment | None = None,
        *,
        tenant_id: str | None = None,
    ) -> schemas.Case: ...


def _clamp(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(-1.0, min(1.0, score))


def build_case(
    raw: dict[str, Any],
    message: str,
    *,
    tenant_id: str | None = None,
    now: datetime | None = None,
) -> schemas.Case:
    """Normalise model output into a new ``RECEIVED`` case.

    The first history entry is always the original message sent by the user.
    Case key and access password are generated here; identifiers in ``raw``
    are ignored.
    """

    timestamp = now or datetime.now(timezone.utc)
    content = dict(raw.get("content") or {})
    analysis = dict(raw.get("analysis") or {})

    content["original_message"] = content.get("original_message") or message
    content.setdefault("subject_line", "Untitled submission")
    content.setdefault("summary", "")
    content["topics"] = [str(topic) for topic in content.get("topics") or []]

    if analysis.get("intent") not in schemas.INTENTS:
        analysis["intent"] = "Other"
    if analysis.get("priority") not in schemas.PRIORITIES:
        analysis["priority"] = "Low"
    analysis["sentiment_score"] = _clamp(analysis.get("sentiment_score"))
    analysis["requires_developer_intervention"] = bool(
        analysis.get("requires_developer_intervention", False)
    )

    try:
        return schemas.Case(
            submission_id=keys.generate_case_key(),
            access_password=keys.generate_access_password(),
            content=content,
            analysis=analysis,
            admin_preview=str(raw.get("admin_preview") or content["subject_line"]),
            timestamp=timestamp,
            status="RECEIVED",
            history=[
                schemas.CaseHistoryItem(
                    id=keys.generate_message_id(),
                    sender="USER",
                    message=content["original_message"],
                    timestamp=timestamp,
                )
            ],
            tenant_id=tenant_id,
        )
    except ValidationError as exc:
        raise ClassificationError("Classification returned an invalid record") from exc


class ClassificationAdapter:
    """Classify submissions with an OpenAI model or the keyword fallback."""

    def __init__(
        self,
        client: Any | None = None,
        *,
        model: str = "gpt-4o-mini",
        completion_params: dict[str, Any] | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._params = {"temperature": 0.2, **(completion_params or {})}

    @property
    def uses_llm(self) -> bool:
        return self._client is not None

    def _user_content(
        self, message: str, attachment: Attachment | None
    ) -> list[dict[str, Any]]:
        parts: list[dict[str, Any]] = [{"type": "text", "text": message}]
        if attachment is None:
            return parts
        if attachment.is_image:
            parts.append({"type": "image_url", "image_url": {"url": attachment.data_url()}})
        elif attachment.is_pdf:
            text = extract_pdf_text(attachment)
            name = attachment.filename or "attachment.pdf"
            parts.append(
                {"type": "text", "text": f"Attached PDF ({name}):\n{text or '[no text layer]'}"}
            )
        return parts

    def _call_model(self, message: str, attachment: Attachment | None) -> dict[str, Any]:
        completion = self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": self._user_content(message, attachment)},
            ],
            response_format=RESPONSE_FORMAT,
            **self._params,
        )
        text = completion.choices[0].message.content if completion.choices else None
        if not text:
            raise ClassificationError("No response from AI")
        payload = json.loads(text)
        if not isinstance(payload, dict):
            raise ClassificationError("AI response is not a JSON object")
        return payload

    def classify(
        self,
        message: str,
        attachment: Attachment | None = None,
        *,
        tenant_id: str | None = None,
    ) -> schemas.Case:
        if not message or not message.strip():
            raise ValueError("Message must not be empty")
        if self._client is None:
            raw = classify_by_keywords(message, attachment)
        else:
            try:
                raw = self._call_model(message, attachment)
            except ClassificationError:
                logger.error("Error processing submission: empty model response")
                raise
            except (OpenAIError, json.JSONDecodeError) as exc:
                logger.error("Error processing submission: %s", exc)
                raise ClassificationError("Failed to process your message") from exc
        case = build_case(raw, message, tenant_id=tenant_id)
        logger.info(
            "Classified case %s as %s/%s",
            case.submission_id,
            case.analysis.intent,
            case.analysis.priority,
        )
        return case


def create_classifier(settings: IntakeSettings) -> ClassificationAdapter:
    """Build the adapter configured by ``settings``."""

    client = OpenAI(api_key=settings.openai_api_key) if settings.openai_api_key else None
    if client is None:
        logger.info("OPENAI_API_KEY not set; using keyword classification")
    return ClassificationAdapter(client, model=settings.openai_model)


__all__ = [
    "ClassificationAdapter",
    "ClassificationError",
    "Classifier",
    "build_case",
    "create_classifier",
]
