"""
Tests for models.py - upload request and result schemas.
"""

import pytest
from pydantic import ValidationError

from models import (
    FileUrlParams,
    UploadFileParams,
    UploadFileResult,
    upload_file_params_json_schema,
)


class TestUploadFileParams:

    def test_accepts_wire_aliases(self):
        params = UploadFileParams.model_validate(
            {"filename": "a.png", "contentType": "image/png", "fileUrl": "https://x.test/a.png"}
        )
        assert params.content_type == "image/png"
        assert params.file_url == "https://x.test/a.png"
        assert params.source_kind == "fileUrl"

    def test_accepts_python_names(self):
        params = UploadFileParams(filename="a.txt", content_type="text/plain", data="YQ==")
        assert params.source_kind == "data"

    def test_requires_a_source(self):
        """
        Given: A request without filePath, fileUrl or data
        When: It is validated
        Then: Validation fails with the missing-source message
        """
        with pytest.raises(ValidationError) as exc_info:
            UploadFileParams(filename="a.txt", content_type="text/plain")
        assert "Must provide filePath, fileUrl, or data" in str(exc_info.value)

    def test_empty_strings_do_not_count_as_sources(self):
        with pytest.raises(ValidationError):
            UploadFileParams(filename="a.txt", content_type="text/plain", file_path="", data="")

    @pytest.mark.parametrize("filename", ["", "   "])
    def test_rejects_blank_filename(self, filename):
        with pytest.raises(ValidationError):
            UploadFileParams(filename=filename, content_type="text/plain", data="YQ==")

    @pytest.mark.parametrize("content_type", ["png", "image/", "/png", "image png", ""])
    def test_rejects_malformed_mime(self, content_type):
        with pytest.raises(ValidationError):
            UploadFileParams(filename="a.png", content_type=content_type, data="YQ==")

    def test_source_precedence(self):
        """
        Given: All three sources at once
        When: source_kind is read
        Then: filePath wins, then fileUrl
        """
        params = UploadFileParams(
            filename="a.txt", content_type="text/plain", file_path="/tmp/a", file_url="https://x.test/a", data="YQ=="
        )
        assert params.source_kind == "filePath"
        params = UploadFileParams(filename="a.txt", content_type="text/plain", file_url="https://x.test/a", data="YQ==")
        assert params.source_kind == "fileUrl"

    def test_json_schema_uses_wire_names(self):
        schema = upload_file_params_json_schema()
        assert set(schema["properties"]) == {"filename", "contentType", "filePath", "fileUrl", "data"}
        assert set(schema["required"]) == {"filename", "contentType"}


class TestUploadFileResult:

    def test_result_is_frozen(self):
        result = UploadFileResult(blob_id="b", content_type="text/plain", size=1, url="https://h/files?workspace=w&file=b")
        with pytest.raises(ValidationError):
            result.size = 2

    def test_to_wire(self):
        result = UploadFileResult(blob_id="b", content_type="text/plain", size=1, url="u")
        assert result.to_wire() == {"blobId": "b", "contentType": "text/plain", "size": 1, "url": "u"}


class TestFileUrlParams:

    def test_requires_blob_id(self):
        with pytest.raises(ValidationError):
            FileUrlParams.model_validate({"blobId": ""})
        assert FileUrlParams.model_validate({"blobId": "b-1"}).blob_id == "b-1"
