"""AI-assisted categorization of anonymous submissions."""

from .attachments import Attachment, AttachmentRejectedError, validate_attachment
from .service import (
    ClassificationAdapter,
    ClassificationError,
    Classifier,
    build_case,
    create_classifier,
)

__all__ = [
    "Attachment",
    "AttachmentRejectedError",
    "ClassificationAdapter",
    "ClassificationError",
    "Classifier",
    "build_case",
    "create_classifier",
    "validate_attachment",
]
