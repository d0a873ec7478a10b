"""Turn an upload request into raw bytes from a local path, a URL or base64."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import httpx

from config import StorageSettings
from models import UploadFileParams
from services.upload_errors import (
    FileFetchError,
    FileTooLargeError,
    InvalidFileDataError,
    SourceFileNotFoundError,
)
from services.upload_validators import MAX_FILE_SIZE
from services.url_safety import is_blocked_url


logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0
DEFAULT_USER_AGENT = "HulyStorageBridge/1.0 (+https://huly.io)"

_DATA_URL_HEADER = re.compile(r"^data:[^,]*;base64,", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def decode_base64_payload(
    payload: str,
    *,
    filename: str = "data",
    max_decoded_size: int = MAX_FILE_SIZE,
) -> bytes:
    """Decode a base64 payload, rejecting anything that does not round-trip.

    A leading ``data:<type>;base64,`` header and embedded whitespace are
    ignored. Padding differences are tolerated; any other difference between
    the input and the re-encoded output means the payload was not clean base64.
    """
    stripped = _DATA_URL_HEADER.sub("", payload.strip(), count=1)
    normalized = _WHITESPACE.sub("", stripped)

    unpadded = normalized.rstrip("=")

    # Estimate decoded size before allocating memory
    estimated_size = len(unpadded) * 3 // 4
    if estimated_size > max_decoded_size:
        raise FileTooLargeError(filename, estimated_size, max_decoded_size)

    if not unpadded:
        raise InvalidFileDataError("Invalid base64 data: empty buffer after decoding")
    if len(unpadded) % 4 == 1:
        raise InvalidFileDataError("Invalid base64 data: truncated payload")

    padded = unpadded + "=" * (-len(unpadded) % 4)
    try:
        decoded = base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidFileDataError(f"Invalid base64 data: {exc}") from exc

    if not decoded:
        raise InvalidFileDataError("Invalid base64 data: empty buffer after decoding")
    if base64.b64encode(decoded).decode("ascii").rstrip("=") != unpadded:
        raise InvalidFileDataError("Invalid base64 data: payload does not survive a decode round trip")
    return decoded


def _read_local_file(file_path: str, filename: str, max_size: int) -> bytes:
    path = Path(file_path)
    try:
        size = path.stat().st_size
    except FileNotFoundError as exc:
        raise SourceFileNotFoundError(file_path) from exc
    except OSError as exc:
        raise InvalidFileDataError(f"Failed to read file {file_path}: {exc}") from exc

    if size > max_size:
        raise FileTooLargeError(filename, size, max_size)

    try:
        return path.read_bytes()
    except FileNotFoundError as exc:
        raise SourceFileNotFoundError(file_path) from exc
    except OSError as exc:
        raise InvalidFileDataError(f"Failed to read file {file_path}: {exc}") from exc


async def read_from_file_path(
    file_path: str,
    *,
    filename: Optional[str] = None,
    max_size: int = MAX_FILE_SIZE,
) -> bytes:
    """Read a local file without blocking the event loop."""
    return await asyncio.to_thread(_read_local_file, file_path, filename or Path(file_path).name, max_size)


class BoundedFetcher:
    """Download remote files with SSRF, redirect, size and time bounds."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        max_bytes: int = MAX_FILE_SIZE,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.max_bytes = max_bytes
        self.user_agent = user_agent
        self._transport = transport

    async def fetch(self, url: str) -> bytes:
        if is_blocked_url(url):
            logger.warning("Refusing to fetch blocked URL %s", url)
            raise FileFetchError(url, "URL blocked: internal/private addresses not allowed")

        scheme = urlparse(url).scheme.lower()
        if scheme not in ("http", "https"):
            raise FileFetchError(url, f"URL scheme '{scheme}' is not supported")

        try:
            return await asyncio.wait_for(self._download(url), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise FileFetchError(url, f"timed out after {self.timeout_seconds:g}s") from exc
        except httpx.HTTPError as exc:
            raise FileFetchError(url, f"{type(exc).__name__}: {exc}") from exc
        except (httpx.InvalidURL, ValueError) as exc:
            raise FileFetchError(url, f"invalid URL: {exc}") from exc

    async def _download(self, url: str) -> bytes:
        timeout = httpx.Timeout(self.timeout_seconds)
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=False,
            trust_env=False,
            headers={"User-Agent": self.user_agent},
            transport=self._transport,
        ) as client:
            async with client.stream("GET", url) as response:
                status_code = response.status_code
                if 300 <= status_code < 400:
                    location = response.headers.get("location") or "no location"
                    raise FileFetchError(url, f"redirect not followed (HTTP {status_code} -> {location})")
                if not response.is_success:
                    raise FileFetchError(url, f"HTTP {status_code}: {response.reason_phrase}")

                declared_size = self._declared_size(response)
                if declared_size is not None and declared_size > self.max_bytes:
                    raise FileFetchError(
                        url, f"declared size {declared_size} exceeds limit of {self.max_bytes} bytes"
                    )

                buffer = bytearray()
                async for chunk in response.aiter_bytes():
                    buffer.extend(chunk)
                    if len(buffer) > self.max_bytes:
                        raise FileFetchError(url, f"response exceeds limit of {self.max_bytes} bytes")

        logger.debug("Fetched %d bytes from %s", len(buffer), url)
        return bytes(buffer)

    @staticmethod
    def _declared_size(response: httpx.Response) -> Optional[int]:
        value = response.headers.get("content-length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None


class FileSourceResolver:
    """Pick the request's source by precedence filePath > fileUrl > data and read it."""

    def __init__(
        self,
        *,
        fetcher: Optional[BoundedFetcher] = None,
        max_size: int = MAX_FILE_SIZE,
    ) -> None:
        self.fetcher = fetcher or BoundedFetcher(max_bytes=max_size)
        self.max_size = max_size

    @classmethod
    def from_settings(
        cls,
        settings: StorageSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "FileSourceResolver":
        fetcher = BoundedFetcher(
            timeout_seconds=settings.fetch_timeout_seconds,
            max_bytes=settings.max_size_bytes,
            user_agent=settings.url_user_agent,
            transport=transport,
        )
        return cls(fetcher=fetcher, max_size=settings.max_size_bytes)

    async def resolve(self, params: UploadFileParams) -> bytes:
        source_kind = params.source_kind
        if source_kind == "filePath":
            return await read_from_file_path(params.file_path, filename=params.filename, max_size=self.max_size)
        if source_kind == "fileUrl":
            return await self.fetcher.fetch(params.file_url)
        return decode_base64_payload(params.data or "", filename=params.filename, max_decoded_size=self.max_size)
