"""
Data Models for the Huly Storage Bridge
=======================================

Pydantic models for upload requests and results. Field aliases match the
camelCase names used on the tool-calling wire.
"""

import re
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Any, Dict, Literal, Optional


SourceKind = Literal["filePath", "fileUrl", "data"]

# type/subtype with optional parameters stripped beforehand
_MIME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9!#$&^_.+-]*/[A-Za-z0-9][A-Za-z0-9!#$&^_.+-]*$")


class UploadFileParams(BaseModel):
    """Request to upload one file from exactly one source.

    When several sources are supplied the first of filePath, fileUrl, data wins.
    """

    model_config = ConfigDict(populate_by_name=True)

    filename: str = Field(..., min_length=1, description="Name to store the file under")
    content_type: str = Field(
        ...,
        alias="contentType",
        description="Declared MIME type of the file (for example image/png)",
    )
    file_path: Optional[str] = Field(
        default=None,
        alias="filePath",
        description="Local path of the file to upload",
    )
    file_url: Optional[str] = Field(
        default=None,
        alias="fileUrl",
        description="Remote http(s) URL to download the file from",
    )
    data: Optional[str] = Field(
        default=None,
        description="Base64 payload, optionally prefixed with a data: URL header",
    )

    @field_validator("filename")
    @classmethod
    def validate_filename(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("filename must not be blank")
        return v

    @field_validator("content_type")
    @classmethod
    def validate_content_type(cls, v: str) -> str:
        if not _MIME_PATTERN.match(v.strip()):
            raise ValueError("contentType must be a MIME type such as 'image/png'")
        return v.strip()

    @model_validator(mode="after")
    def validate_source(self) -> "UploadFileParams":
        if not (self.file_path or self.file_url or self.data):
            raise ValueError("Must provide filePath, fileUrl, or data")
        return self

    @property
    def source_kind(self) -> SourceKind:
        if self.file_path:
            return "filePath"
        if self.file_url:
            return "fileUrl"
        return "data"


class UploadFileResult(BaseModel):
    """Outcome of a successful upload."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    blob_id: str = Field(..., alias="blobId", description="Identifier assigned by blob storage")
    content_type: str = Field(..., alias="contentType", description="Content type the blob was stored with")
    size: int = Field(..., ge=0, description="Stored size in bytes")
    url: str = Field(..., description="Access URL for the stored blob")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class FileUrlParams(BaseModel):
    """Request to compose the access URL of an already stored blob."""

    model_config = ConfigDict(populate_by_name=True)

    blob_id: str = Field(..., alias="blobId", min_length=1, description="Blob identifier returned by upload_file")


def upload_file_params_json_schema() -> Dict[str, Any]:
    """JSON Schema for upload_file arguments, keyed by wire names."""
    return UploadFileParams.model_json_schema(by_alias=True)


def file_url_params_json_schema() -> Dict[str, Any]:
    return FileUrlParams.model_json_schema(by_alias=True)
