"""Prompt text and response schema for submission classification."""

from __future__ import annotations

from typing import Any

from app.cases.schemas import INTENTS, PRIORITIES

SYSTEM_INSTRUCTION = """
You are a Privacy-First Backend Logic Assistant. Your task is to process incoming anonymous contact form submissions into structured data for an admin dashboard.

Constraints:
1. Anonymity: Do not attempt to extract names, phone numbers, or personal emails. If a user voluntarily provides them, redact them in the "summary" (replace with [REDACTED]) but keep them in the "original_message" for record-keeping.
2. Focus: Concentrate on the intent and urgency of the feedback rather than the identity of the sender.
3. Attachments: If an image or PDF is provided, analyze its content in context with the text. Describe relevant details in the "original_message" or "summary" if it adds context (e.g., "User attached a screenshot of a 404 error").

Logic Rules:
- If the message mentions "security," "exploit," or "leak," set priority to Urgent.
- Categorize vague messages (e.g., "it doesn't work") as Low priority and flag for "General" intent.
- Use the sentiment_score to help admins sort by the most frustrated users first (-1.0 is very angry, 1.0 is very happy).
""".strip()


def _object(properties: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


SUBMISSION_SCHEMA: dict[str, Any] = _object(
    {
        "content": _object(
            {
                "subject_line": {
                    "type": "string",
                    "description": "A concise title generated based on the message",
                },
                "original_message": {"type": "string"},
                "summary": {
                    "type": "string",
                    "description": (
                        "Redacted 1-sentence summary. If an image/PDF was attached, "
                        "mention what it depicts briefly."
                    ),
                },
                "topics": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "List of relevant tags or topics",
                },
            }
        ),
        "analysis": _object(
            {
                "intent": {"type": "string", "enum": list(INTENTS)},
                "priority": {"type": "string", "enum": list(PRIORITIES)},
                "sentiment_score": {
                    "type": "number",
                    "description": "Float between -1.0 (negative) and 1.0 (positive)",
                },
                "requires_developer_intervention": {"type": "boolean"},
            }
        ),
        "admin_preview": {
            "type": "string",
            "description": "A 50-character snippet for dashboard list views",
        },
    }
)

RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "submission",
        "strict": True,
        "schema": SUBMISSION_SCHEMA,
    },
}
