"""Classified errors raised by the Huly storage upload pipeline."""

from __future__ import annotations

from typing import Any, Dict, Optional


# JSON-RPC error codes used by the MCP tool surface
MCP_INVALID_PARAMS = -32602
MCP_INTERNAL_ERROR = -32603


class HulyStorageError(Exception):
    """Base exception for every classified upload failure."""

    kind: str = "HulyStorageError"
    mcp_error_code: int = MCP_INTERNAL_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "code": self.mcp_error_code}


class SourceFileNotFoundError(HulyStorageError):
    """Raised when a local file path does not exist."""

    kind = "FileNotFoundError"
    mcp_error_code = MCP_INVALID_PARAMS

    def __init__(self, file_path: str) -> None:
        super().__init__(f"File not found: {file_path}")
        self.file_path = file_path


class InvalidFileDataError(HulyStorageError):
    """Raised when file bytes cannot be obtained or decoded."""

    kind = "InvalidFileDataError"
    mcp_error_code = MCP_INVALID_PARAMS


class FileFetchError(HulyStorageError):
    """Raised when a remote URL could not be downloaded."""

    kind = "FileFetchError"

    def __init__(self, file_url: str, reason: str) -> None:
        super().__init__(f"Failed to fetch file from {file_url}: {reason}")
        self.file_url = file_url
        self.reason = reason


class InvalidContentTypeError(HulyStorageError):
    """Raised when the declared content type is not on the allowlist."""

    kind = "InvalidContentTypeError"
    mcp_error_code = MCP_INVALID_PARAMS

    def __init__(self, filename: str, content_type: str) -> None:
        super().__init__(f"Invalid content type '{content_type}' for file '{filename}'")
        self.filename = filename
        self.content_type = content_type


class FileTooLargeError(HulyStorageError):
    """Raised when a buffer exceeds the upload size ceiling."""

    kind = "FileTooLargeError"
    mcp_error_code = MCP_INVALID_PARAMS

    def __init__(self, filename: str, size: int, max_size: int) -> None:
        super().__init__(
            f"File '{filename}' is too large ({size} bytes); maximum allowed is {max_size} bytes"
        )
        self.filename = filename
        self.size = size
        self.max_size = max_size


class HulyConnectionError(HulyStorageError):
    """Raised when the storage backend cannot be reached."""

    kind = "HulyConnectionError"

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Connection error: {message}")
        self.cause = cause


class HulyAuthError(HulyStorageError):
    """Raised when the backend rejects the configured credentials."""

    kind = "HulyAuthError"

    def __init__(self, message: str) -> None:
        super().__init__(f"Authentication error: {message}")


class FileUploadError(HulyStorageError):
    """Raised when the blob write itself fails."""

    kind = "FileUploadError"

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"File upload error: {message}")
        self.cause = cause
