"""Attachment payload resolution.

Attachments arrive either inline (raw bytes or base64 text) or as a
filesystem path read at send time. Relative paths resolve against the
configured attachment directory.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import time
from collections.abc import Mapping
from pathlib import Path, PurePath

from ..core.models import Attachment
from ..transport import ResolvedAttachment

LOGGER = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
UPLOAD_DIR_NAME = "temp_attachments"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9.-]")

MIME_TYPES: Mapping[str, str] = {
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".htm": "text/html",
    ".html": "text/html",
    ".json": "application/json",
    ".xml": "application/xml",
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".zip": "application/zip",
    ".rar": "application/vnd.rar",
    ".7z": "application/x-7z-compressed",
    ".gz": "application/gzip",
    ".tar": "application/x-tar",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".mp4": "video/mp4",
    ".avi": "video/x-msvideo",
}


class AttachmentError(ValueError):
    """Raised when an attachment payload cannot be loaded."""


def guess_content_type(filename: str) -> str:
    """Infer a MIME type from the file extension."""
    suffix = PurePath(filename).suffix.lower()
    return MIME_TYPES.get(suffix, DEFAULT_CONTENT_TYPE)


def resolve_attachment(
    attachment: Attachment, *, base_dir: Path | None = None
) -> ResolvedAttachment:
    """Load the payload of ``attachment``.

    Raises:
        AttachmentError: If the file cannot be read or the content is invalid.
    """
    content_type = attachment.content_type or guess_content_type(attachment.filename)

    if attachment.path:
        file_path = Path(attachment.path).expanduser()
        if not file_path.is_absolute() and base_dir is not None:
            file_path = base_dir / file_path
        try:
            payload = file_path.read_bytes()
        except OSError as exc:
            raise AttachmentError(
                f"Cannot read attachment {attachment.filename}: {exc}"
            ) from exc
        LOGGER.debug("Loaded attachment %s from %s", attachment.filename, file_path)
    elif isinstance(attachment.content, bytes):
        payload = attachment.content
    elif isinstance(attachment.content, str):
        payload = _decode_base64(attachment.filename, attachment.content)
    else:
        raise AttachmentError(f"Attachment {attachment.filename} has no content")

    return ResolvedAttachment(
        filename=attachment.filename, content=payload, content_type=content_type
    )


def store_upload(data_dir: Path, filename: str, encoded: str) -> Path:
    """Decode a base64 upload and write it under ``data_dir/temp_attachments``.

    The stored name is the millisecond timestamp plus the filename with every
    character outside ``[A-Za-z0-9.-]`` replaced by ``_``.

    Raises:
        AttachmentError: If the content is not valid base64 or cannot be written.
    """
    payload = _decode_base64(filename, encoded)
    upload_dir = Path(data_dir) / UPLOAD_DIR_NAME
    safe_name = _UNSAFE_FILENAME_CHARS.sub("_", PurePath(filename).name) or "attachment"
    target = upload_dir / f"{time.time_ns() // 1_000_000}_{safe_name}"
    try:
        upload_dir.mkdir(parents=True, exist_ok=True)
        target.write_bytes(payload)
    except OSError as exc:
        raise AttachmentError(f"Cannot store attachment {filename}: {exc}") from exc
    LOGGER.info("Stored uploaded attachment %s (%d bytes)", target.name, len(payload))
    return target.resolve()


def _decode_base64(filename: str, encoded: str) -> bytes:
    content = "".join(encoded.split())
    if "," in content and content.startswith("data:"):
        content = content.split(",", 1)[1]
    padding_needed = -len(content) % 4
    content += "=" * padding_needed
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AttachmentError(f"Invalid base64 content for {filename}: {exc}") from exc


__all__ = [
    "AttachmentError",
    "DEFAULT_CONTENT_TYPE",
    "MIME_TYPES",
    "guess_content_type",
    "resolve_attachment",
    "store_upload",
]
