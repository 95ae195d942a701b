"""
Purpose: Guardrails for outgoing messages and attachments.
Content: early, predictable failures; prevent oversized messages, oversized
files and unsupported file types before anything reaches the chat store.
"""

from __future__ import annotations
from typing import Iterable

from ..errors import InputRejectedError
from ..models import Attachment

IMAGE_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/svg+xml",
    "image/webp",
}

DOCUMENT_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "application/zip",
    "application/x-rar-compressed",
    "text/javascript",
    "text/typescript",
    "text/html",
    "text/css",
    "text/x-python",
    "text/x-java",
    "text/x-c++",
    "audio/mpeg",
    "audio/wav",
    "video/mp4",
    "video/webm",
}

MAX_INPUT_CHARS = 6000
MAX_FILE_SIZE = 5 * 1024 * 1024


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


class DefaultSecurity:
    def validate_attachment(self, attachment: Attachment) -> None:
        if attachment.size > MAX_FILE_SIZE:
            raise InputRejectedError(
                f"{attachment.name}: files must not exceed {format_file_size(MAX_FILE_SIZE)}."
            )
        if attachment.type not in IMAGE_TYPES | DOCUMENT_TYPES:
            raise InputRejectedError(
                f"{attachment.name}: unsupported file type {attachment.type!r}."
            )

    def validate_outgoing(self, text: str, attachments: Iterable[Attachment] = ()) -> None:
        attachments = list(attachments)
        if not (text or "").strip() and not attachments:
            raise InputRejectedError("Please enter a non-empty message.")
        if len(text or "") > MAX_INPUT_CHARS:
            raise InputRejectedError(
                f"Your message is too long ({len(text)} > {MAX_INPUT_CHARS} characters)."
            )
        for attachment in attachments:
            self.validate_attachment(attachment)

    def sanitize_for_prompt(self, text: str) -> str:
        return (text or "").replace("\x00", "").strip()
