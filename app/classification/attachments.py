"""Validation and preparation of the optional submission attachment."""

from __future__ import annotations

import base64
import fnmatch
import logging
from dataclasses import dataclass
from io import BytesIO

from pypdf import PdfReader
from pypdf.errors import PdfReadError

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 5 * 1024 * 1024
DEFAULT_ALLOWED_TYPES: tuple[str, ...] = ("image/*", "application/pdf")


class AttachmentRejectedError(ValueError):
    """Raised when an attachment is too large or of an unsupported type."""


@dataclass(frozen=True)
class Attachment:
    """Binary attachment content with its media type."""

    data: bytes
    mime_type: str
    filename: str | None = None

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == "application/pdf"

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    def data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


def validate_attachment(
    attachment: Attachment,
    *,
    max_size: int = DEFAULT_MAX_SIZE,
    allowed_types: tuple[str, ...] = DEFAULT_ALLOWED_TYPES,
) -> Attachment:
    """Return ``attachment`` unchanged or raise :class:`AttachmentRejectedError`."""

    if len(attachment.data) > max_size:
        megabytes = max_size // (1024 * 1024)
        raise AttachmentRejectedError(f"File is too large. Max {megabytes}MB allowed.")
    mime_type = (attachment.mime_type or "").lower()
    if not any(fnmatch.fnmatch(mime_type, pattern) for pattern in allowed_types):
        raise AttachmentRejectedError("Unsupported attachment type.")
    return attachment


def extract_pdf_text(attachment: Attachment) -> str:
    """Return the text layer of a PDF attachment, or ``""`` if unreadable."""

    try:
        reader = PdfReader(BytesIO(attachment.data))
        return "".join(page.extract_text() or "" for page in reader.pages)
    except (PdfReadError, ValueError) as exc:
        logger.warning("Could not read PDF attachment %s: %s", attachment.filename, exc)
        return ""
