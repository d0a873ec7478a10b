"""Size and content-type checks applied to every resolved upload buffer."""

from __future__ import annotations

from typing import FrozenSet

from services.upload_errors import FileTooLargeError, InvalidContentTypeError


MAX_FILE_SIZE = 100 * 1024 * 1024

ALLOWED_CONTENT_TYPES: FrozenSet[str] = frozenset(
    {
        # Images
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/svg+xml",
        "image/bmp",
        "image/tiff",
        # Documents
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "text/plain",
        "text/csv",
        "text/markdown",
        "text/html",
        # Archives
        "application/zip",
        "application/x-tar",
        "application/gzip",
        "application/x-7z-compressed",
        "application/x-rar-compressed",
        # Audio / video
        "audio/mpeg",
        "audio/wav",
        "audio/ogg",
        "video/mp4",
        "video/webm",
        "video/quicktime",
        # Code / data
        "application/json",
        "application/xml",
        "text/xml",
        "application/javascript",
        # Generic binary
        "application/octet-stream",
    }
)


def validate_file_size(buffer: bytes, filename: str, max_size: int = MAX_FILE_SIZE) -> None:
    size = len(buffer)
    if size > max_size:
        raise FileTooLargeError(filename, size, max_size)


def validate_content_type(content_type: str, filename: str) -> None:
    """Check the declared MIME type against the allowlist.

    Only the declared value is inspected; the bytes are never sniffed.
    """
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise InvalidContentTypeError(filename, content_type)
