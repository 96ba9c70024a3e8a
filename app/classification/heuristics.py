"""Deterministic classifier used when no AI provider is configured.

It produces the same JSON shape as the model so the rest of the pipeline is
exercised identically in development and CI without network access.
"""

from __future__ import annotations

import re
from typing import Any

from .attachments import Attachment

_URGENT_TERMS = ("security", "exploit", "leak")
_INTENT_TERMS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Bug Report", ("bug", "broken", "error", "crash", "fails", "not working", "doesn't work")),
    ("Feature Request", ("feature", "would be nice", "please add", "could you add", "wish")),
    ("Complaint", ("complaint", "unacceptable", "terrible", "awful", "angry", "harass")),
    ("General Praise", ("thank", "great", "love", "awesome", "excellent")),
)
_NEGATIVE_TERMS = ("broken", "bad", "terrible", "awful", "angry", "hate", "worst", "unacceptable")
_POSITIVE_TERMS = ("thank", "great", "love", "awesome", "excellent", "good")

_EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")
_PHONE_RE = re.compile(r"\+?\d[\d\s().-]{7,}\d")

VAGUE_WORD_LIMIT = 5
PREVIEW_LENGTH = 50


def redact(text: str) -> str:
    """Replace e-mail addresses and phone numbers with ``[REDACTED]``."""

    return _PHONE_RE.sub("[REDACTED]", _EMAIL_RE.sub("[REDACTED]", text))


def _contains(text: str, terms: tuple[str, ...]) -> bool:
    return any(term in text for term in terms)


def _sentiment(text: str) -> float:
    negative = sum(text.count(term) for term in _NEGATIVE_TERMS)
    positive = sum(text.count(term) for term in _POSITIVE_TERMS)
    total = negative + positive
    if not total:
        return 0.0
    return round((positive - negative) / total, 2)


def _subject(message: str) -> str:
    first_line = message.strip().splitlines()[0] if message.strip() else "Untitled submission"
    words = first_line.split()
    subject = " ".join(words[:8])
    return subject[:1].upper() + subject[1:] if subject else "Untitled submission"


def classify_by_keywords(message: str, attachment: Attachment | None = None) -> dict[str, Any]:
    """Return a classification record for ``message`` using keyword rules."""

    lowered = message.lower()
    intent = "Other"
    for label, terms in _INTENT_TERMS:
        if _contains(lowered, terms):
            intent = label
            break

    vague = len(lowered.split()) < VAGUE_WORD_LIMIT and intent in {"Other", "Bug Report"}
    if _contains(lowered, _URGENT_TERMS):
        priority = "Urgent"
    elif vague:
        priority, intent = "Low", "General"
    elif intent in {"Bug Report", "Complaint"}:
        priority = "High" if _sentiment(lowered) < 0 else "Medium"
    else:
        priority = "Low"

    summary = redact(" ".join(message.split()))
    if attachment is not None:
        kind = "a PDF document" if attachment.is_pdf else "an image"
        summary = f"{summary} User attached {kind}."

    topics = sorted({term for term in _URGENT_TERMS if term in lowered})
    if intent not in {"Other", "General"}:
        topics.insert(0, intent.lower())

    preview = " ".join(message.split())[:PREVIEW_LENGTH]
    return {
        "content": {
            "subject_line": _subject(redact(message)),
            "original_message": message,
            "summary": summary,
            "topics": topics,
        },
        "analysis": {
            "intent": intent,
            "priority": priority,
            "sentiment_score": _sentiment(lowered),
            "requires_developer_intervention": intent == "Bug Report" or priority == "Urgent",
        },
        "admin_preview": redact(preview),
    }
