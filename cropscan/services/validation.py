"""Upload checks that run before any expensive work."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import UploadFile
from starlette.datastructures import UploadFile as StarletteUploadFile

from cropscan.config import MAX_UPLOAD_BYTES
from cropscan.errors import ErrorCode, ValidationError

ALLOWED_TYPES = frozenset({"image/jpeg", "image/png", "image/webp"})


@dataclass(frozen=True)
class ValidatedUpload:
    data: bytes
    content_type: str
    filename: str | None = None


def normalize_content_type(value: str | None) -> str:
    if not value:
        return ""
    return value.split(";", 1)[0].strip().lower()


async def read_upload(
    upload: UploadFile | str | None, max_bytes: int = MAX_UPLOAD_BYTES
) -> ValidatedUpload:
    """Check presence, MIME type and size, in that order.

    At most ``max_bytes + 1`` bytes are read so an oversize body is never
    buffered whole.
    """
    # a plain text form field under "file" carries no upload
    if not isinstance(upload, StarletteUploadFile) or (
        not upload.filename and not upload.size
    ):
        raise ValidationError("No file provided", ErrorCode.MISSING_FILE)

    content_type = normalize_content_type(upload.content_type)
    if content_type not in ALLOWED_TYPES:
        raise ValidationError(
            "Invalid file type. Use JPEG, PNG, or WebP.",
            ErrorCode.UNSUPPORTED_TYPE,
        )

    if upload.size is not None and upload.size > max_bytes:
        raise ValidationError(_too_large_message(max_bytes), ErrorCode.TOO_LARGE)
    data = await upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise ValidationError(_too_large_message(max_bytes), ErrorCode.TOO_LARGE)
    if not data:
        raise ValidationError("No file provided", ErrorCode.MISSING_FILE)

    return ValidatedUpload(
        data=data, content_type=content_type, filename=upload.filename
    )


def _too_large_message(max_bytes: int) -> str:
    return f"File too large. Max {max_bytes // (1024 * 1024)} MB."
