"""
Tests for services/file_sources.py - base64 decoding, local reads and the
bounded remote fetcher.
"""

import asyncio
import base64

import httpx
import pytest

from models import UploadFileParams
from services.file_sources import (
    BoundedFetcher,
    FileSourceResolver,
    decode_base64_payload,
    read_from_file_path,
)
from services.upload_errors import (
    FileFetchError,
    FileTooLargeError,
    InvalidFileDataError,
    SourceFileNotFoundError,
)


# ============================================================================
# decode_base64_payload
# ============================================================================

class TestDecodeBase64Payload:

    def test_decodes_plain_payload(self):
        """
        Given: Canonical base64 for b"hello"
        When: decode_base64_payload() is called
        Then: The original bytes are returned
        """
        assert decode_base64_payload("aGVsbG8=") == b"hello"

    def test_strips_data_url_header(self):
        """
        Given: A data: URL carrying a PNG header prefix
        When: decode_base64_payload() is called
        Then: The header is ignored and the body decoded
        """
        payload = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n").decode()
        assert decode_base64_payload(payload) == b"\x89PNG\r\n"

    def test_tolerates_missing_padding_and_line_breaks(self):
        """
        Given: Base64 wrapped across lines with padding removed
        When: decode_base64_payload() is called
        Then: Decoding succeeds
        """
        encoded = base64.b64encode(b"a longer payload that wraps").decode().rstrip("=")
        wrapped = "\n".join(encoded[i:i + 8] for i in range(0, len(encoded), 8))
        assert decode_base64_payload(wrapped) == b"a longer payload that wraps"

    @pytest.mark.parametrize("payload", ["", "   ", "====", "data:text/plain;base64,"])
    def test_rejects_empty_payload(self, payload):
        with pytest.raises(InvalidFileDataError):
            decode_base64_payload(payload)

    @pytest.mark.parametrize("payload", ["not base64!", "aGVsbG8*", "a", "YR==", "aGVs=bG8="])
    def test_rejects_payload_that_does_not_round_trip(self, payload):
        """
        Given: Input with foreign characters, a truncated tail, non-canonical
               trailing bits or padding in the middle
        When: decode_base64_payload() is called
        Then: InvalidFileDataError is raised
        """
        with pytest.raises(InvalidFileDataError):
            decode_base64_payload(payload)

    def test_rejects_oversized_payload_before_decoding(self):
        """
        Given: A payload whose estimated decoded size exceeds the ceiling
        When: decode_base64_payload() is called with a small limit
        Then: FileTooLargeError is raised carrying the limit
        """
        with pytest.raises(FileTooLargeError) as exc_info:
            decode_base64_payload("A" * 400, filename="big.bin", max_decoded_size=100)
        assert exc_info.value.max_size == 100
        assert exc_info.value.filename == "big.bin"

    def test_accepts_payload_exactly_at_limit(self):
        """
        Given: A padded payload whose decoded size equals the ceiling
        When: decode_base64_payload() is called
        Then: Padding is not counted and the payload is accepted
        """
        assert decode_base64_payload("aGVsbG8=", max_decoded_size=5) == b"hello"

        with pytest.raises(FileTooLargeError):
            decode_base64_payload("aGVsbG8=", max_decoded_size=4)

    @pytest.mark.parametrize("with_header", [False, True])
    @pytest.mark.parametrize("length", [1, 2, 3, 4, 5, 6, 7, 31, 64, 255])
    def test_round_trips_arbitrary_bytes(self, length, with_header):
        """
        Given: Bytes of every padding remainder, including values that encode to + and /
        When: The canonical encoding is decoded with a limit equal to the length
        Then: The original bytes come back
        """
        original = bytes((251 + i * 37) % 256 for i in range(length))
        encoded = base64.b64encode(original).decode("ascii")
        payload = f"data:application/octet-stream;base64,{encoded}" if with_header else encoded

        assert decode_base64_payload(payload, max_decoded_size=length) == original

    def test_round_trips_plus_and_slash_alphabet(self):
        original = b"\xfb\xff\xbf" * 4
        encoded = base64.b64encode(original).decode("ascii")
        assert "+" in encoded and "/" in encoded
        assert decode_base64_payload(encoded) == original


# ============================================================================
# read_from_file_path
# ============================================================================

class TestReadFromFilePath:

    @pytest.mark.asyncio
    async def test_reads_existing_file(self, tmp_path):
        target = tmp_path / "notes.txt"
        target.write_bytes(b"meeting notes")
        assert await read_from_file_path(str(target)) == b"meeting notes"

    @pytest.mark.asyncio
    async def test_missing_file_is_file_not_found(self, tmp_path):
        """
        Given: A path that does not exist
        When: read_from_file_path() is called
        Then: SourceFileNotFoundError names the path
        """
        missing = str(tmp_path / "absent.pdf")
        with pytest.raises(SourceFileNotFoundError) as exc_info:
            await read_from_file_path(missing)
        assert exc_info.value.file_path == missing
        assert exc_info.value.kind == "FileNotFoundError"

    @pytest.mark.asyncio
    async def test_directory_is_invalid_file_data(self, tmp_path):
        with pytest.raises(InvalidFileDataError):
            await read_from_file_path(str(tmp_path))

    @pytest.mark.asyncio
    async def test_oversized_file_rejected_before_read(self, tmp_path):
        """
        Given: A file larger than the configured ceiling
        When: read_from_file_path() is called
        Then: FileTooLargeError is raised from the size on disk
        """
        target = tmp_path / "large.bin"
        target.write_bytes(b"x" * 64)
        with pytest.raises(FileTooLargeError) as exc_info:
            await read_from_file_path(str(target), filename="large.bin", max_size=10)
        assert exc_info.value.size == 64


# ============================================================================
# BoundedFetcher
# ============================================================================

def _recording_transport(handler):
    seen = []

    def wrapper(request):
        seen.append(request)
        return handler(request)

    return httpx.MockTransport(wrapper), seen


class TestBoundedFetcher:

    @pytest.mark.asyncio
    async def test_downloads_successful_response(self):
        transport, seen = _recording_transport(lambda request: httpx.Response(200, content=b"remote bytes"))
        fetcher = BoundedFetcher(transport=transport, user_agent="test-agent/1.0")

        data = await fetcher.fetch("https://files.example.com/report.pdf")

        assert data == b"remote bytes"
        assert seen[0].headers["user-agent"] == "test-agent/1.0"

    @pytest.mark.asyncio
    async def test_blocked_url_issues_no_request(self):
        """
        Given: The cloud metadata URL
        When: fetch() is called
        Then: FileFetchError is raised and nothing reaches the transport
        """
        transport, seen = _recording_transport(lambda request: httpx.Response(200, content=b"secret"))
        fetcher = BoundedFetcher(transport=transport)

        with pytest.raises(FileFetchError) as exc_info:
            await fetcher.fetch("http://169.254.169.254/latest/meta-data")

        assert seen == []
        assert exc_info.value.file_url == "http://169.254.169.254/latest/meta-data"
        assert "blocked" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_non_http_scheme_rejected(self):
        transport, seen = _recording_transport(lambda request: httpx.Response(200))
        fetcher = BoundedFetcher(transport=transport)

        with pytest.raises(FileFetchError):
            await fetcher.fetch("ftp://files.example.com/a.txt")
        assert seen == []

    @pytest.mark.asyncio
    async def test_malformed_idna_host_is_classified(self):
        """
        Given: A URL whose host is an empty IDNA A-label
        When: fetch() is called
        Then: FileFetchError is raised and nothing reaches the transport
        """
        transport, seen = _recording_transport(lambda request: httpx.Response(200))
        fetcher = BoundedFetcher(transport=transport)

        with pytest.raises(FileFetchError) as exc_info:
            await fetcher.fetch("http://xn--/x")

        assert seen == []
        assert exc_info.value.file_url == "http://xn--/x"

    @pytest.mark.asyncio
    async def test_redirect_is_not_followed(self):
        """
        Given: A server that redirects to an internal address
        When: fetch() is called
        Then: Exactly one request is made and FileFetchError mentions the redirect
        """
        transport, seen = _recording_transport(
            lambda request: httpx.Response(302, headers={"location": "http://127.0.0.1/admin"})
        )
        fetcher = BoundedFetcher(transport=transport)

        with pytest.raises(FileFetchError) as exc_info:
            await fetcher.fetch("https://files.example.com/redirect")

        assert len(seen) == 1
        assert "redirect" in exc_info.value.reason
        assert "302" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        transport, _ = _recording_transport(lambda request: httpx.Response(404))
        fetcher = BoundedFetcher(transport=transport)

        with pytest.raises(FileFetchError) as exc_info:
            await fetcher.fetch("https://files.example.com/missing.png")
        assert exc_info.value.reason == "HTTP 404: Not Found"

    @pytest.mark.asyncio
    async def test_transport_error_is_classified(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = BoundedFetcher(transport=httpx.MockTransport(handler))

        with pytest.raises(FileFetchError) as exc_info:
            await fetcher.fetch("https://files.example.com/a.png")
        assert "ConnectError" in exc_info.value.reason
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_slow_server_hits_wall_clock_timeout(self):
        """
        Given: A server slower than the fetch timeout
        When: fetch() is called
        Then: FileFetchError reports the timeout
        """
        async def slow_handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, content=b"late")

        fetcher = BoundedFetcher(timeout_seconds=0.05, transport=httpx.MockTransport(slow_handler))

        with pytest.raises(FileFetchError) as exc_info:
            await fetcher.fetch("https://slow.example.com/file.bin")
        assert "timed out" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_declared_size_over_limit(self):
        transport, _ = _recording_transport(lambda request: httpx.Response(200, content=b"x" * 50))
        fetcher = BoundedFetcher(transport=transport, max_bytes=10)

        with pytest.raises(FileFetchError) as exc_info:
            await fetcher.fetch("https://files.example.com/big.bin")
        assert "exceeds" in exc_info.value.reason


# ============================================================================
# FileSourceResolver
# ============================================================================

class TestFileSourceResolver:

    @pytest.mark.asyncio
    async def test_file_path_takes_precedence(self, tmp_path):
        """
        Given: A request carrying filePath, fileUrl and data at once
        When: resolve() is called
        Then: The local file wins and no network request is made
        """
        target = tmp_path / "local.txt"
        target.write_bytes(b"from disk")
        transport, seen = _recording_transport(lambda request: httpx.Response(200, content=b"from url"))
        resolver = FileSourceResolver(fetcher=BoundedFetcher(transport=transport))
        params = UploadFileParams(
            filename="local.txt",
            content_type="text/plain",
            file_path=str(target),
            file_url="https://files.example.com/a.txt",
            data=base64.b64encode(b"from data").decode(),
        )

        assert await resolver.resolve(params) == b"from disk"
        assert seen == []

    @pytest.mark.asyncio
    async def test_file_url_beats_data(self):
        transport, seen = _recording_transport(lambda request: httpx.Response(200, content=b"from url"))
        resolver = FileSourceResolver(fetcher=BoundedFetcher(transport=transport))
        params = UploadFileParams(
            filename="a.txt",
            content_type="text/plain",
            file_url="https://files.example.com/a.txt",
            data=base64.b64encode(b"from data").decode(),
        )

        assert await resolver.resolve(params) == b"from url"
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_data_used_when_alone(self):
        resolver = FileSourceResolver()
        params = UploadFileParams(filename="a.txt", content_type="text/plain", data="aGVsbG8=")
        assert await resolver.resolve(params) == b"hello"

    @pytest.mark.asyncio
    async def test_relative_path_resolves_from_working_directory(self, tmp_path, monkeypatch):
        (tmp_path / "rel.txt").write_bytes(b"relative")
        monkeypatch.chdir(tmp_path)
        resolver = FileSourceResolver()
        params = UploadFileParams(filename="rel.txt", content_type="text/plain", file_path="rel.txt")
        assert await resolver.resolve(params) == b"relative"
