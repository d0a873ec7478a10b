"""Authenticated, retrying connection to Huly blob storage."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar
from urllib.parse import quote

import httpx

import json_utils as json
from services.huly_accounts import WorkspaceTokenProvider
from services.upload_errors import (
    FileUploadError,
    HulyAuthError,
    HulyConnectionError,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_BASE_DELAY_SECONDS = 0.1

# Platform status codes that mean the credentials themselves were rejected
AUTH_STATUS_CODES = frozenset(
    {
        "platform:status:Unauthorized",
        "platform:status:TokenExpired",
        "platform:status:TokenNotActive",
        "platform:status:PasswordExpired",
        "platform:status:Forbidden",
        "platform:status:InvalidPassword",
        "platform:status:AccountNotFound",
        "platform:status:AccountNotConfirmed",
    }
)

AUTH_ERROR_MARKERS = (
    "unauthorized",
    "authentication",
    "auth",
    "credentials",
    "401",
    "invalid password",
    "invalid email",
    "login failed",
)


def is_auth_failure(exc: BaseException) -> bool:
    """Decide whether a connection failure is a permanent credential problem.

    Structured signals (platform status codes, HTTP 401/403) are checked
    first; the lowercase message is then scanned for known auth markers.
    Any message containing "auth" matches, so such failures are never retried.
    """
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, str) and status_code in AUTH_STATUS_CODES:
        return True
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in (401, 403):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in AUTH_ERROR_MARKERS)


def concat_link(host: str, path: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    trimmed_host = host[:-1] if host.endswith("/") else host
    trimmed_path = path if path.startswith("/") else f"/{path}"
    return f"{trimmed_host}{trimmed_path}"


def build_file_url(base_url: str, workspace_id: str, blob_id: str) -> str:
    trimmed = base_url[:-1] if base_url.endswith("/") else base_url
    return f"{trimmed}/files?workspace={quote(workspace_id, safe='')}&file={quote(blob_id, safe='')}"


@dataclass(frozen=True)
class StoredBlob:
    blob_id: str
    content_type: str
    size: int


class HulyBlobClient:
    """Writes blobs through the deployment's multipart upload endpoint."""

    def __init__(
        self,
        *,
        upload_url: str,
        token: str,
        workspace_id: str,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.upload_url = upload_url
        self.workspace_id = workspace_id
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=False,
            trust_env=False,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    async def put(self, filename: str, data: bytes, content_type: str, size: int) -> StoredBlob:
        try:
            response = await self._client.post(
                self.upload_url,
                params={"workspace": self.workspace_id},
                files={"file": (filename, data, content_type)},
            )
        except httpx.HTTPError as exc:
            raise FileUploadError(f"File upload failed: {exc}", cause=exc) from exc

        if not response.is_success:
            detail = response.text.strip()[:500] or response.reason_phrase
            raise FileUploadError(f"File upload failed: HTTP {response.status_code}: {detail}")

        try:
            payload = json.loads(response.content)
        except json.JSONDecodeError as exc:
            raise FileUploadError("File upload failed: response is not valid JSON", cause=exc) from exc

        entry = payload[0] if isinstance(payload, list) and payload else payload
        if not isinstance(entry, dict):
            raise FileUploadError(f"File upload failed: unexpected response {payload!r}")
        if entry.get("error"):
            raise FileUploadError(f"File upload failed: {entry['error']}")

        blob_id = entry.get("id") or entry.get("_id")
        if not isinstance(blob_id, str) or not blob_id:
            raise FileUploadError("File upload failed: response carries no blob id")

        # Malformed metadata falls back to what was sent
        stored_type = entry.get("contentType")
        if not isinstance(stored_type, str) or not stored_type.strip():
            stored_type = content_type
        stored_size = entry.get("size")
        if not isinstance(stored_size, int) or isinstance(stored_size, bool) or stored_size < 0:
            stored_size = size
        return StoredBlob(blob_id=blob_id, content_type=stored_type, size=stored_size)

    async def aclose(self) -> None:
        await self._client.aclose()


@dataclass(frozen=True)
class StorageConnection:
    """Immutable handle on an authenticated storage session."""

    base_url: str
    upload_url: str
    workspace_id: str
    blob_client: HulyBlobClient = field(repr=False, compare=False)

    def file_url(self, blob_id: str) -> str:
        return build_file_url(self.base_url, self.workspace_id, blob_id)


async def open_storage_connection(
    token_provider: WorkspaceTokenProvider,
    *,
    base_url: str,
    timeout_seconds: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> StorageConnection:
    access = await token_provider.get_workspace_access()
    upload_url = concat_link(base_url, access.server_config.upload_url or "/upload")
    blob_client = HulyBlobClient(
        upload_url=upload_url,
        token=access.token,
        workspace_id=access.workspace_id,
        timeout_seconds=timeout_seconds,
        transport=transport,
    )
    return StorageConnection(
        base_url=base_url,
        upload_url=upload_url,
        workspace_id=access.workspace_id,
        blob_client=blob_client,
    )


async def connect_storage_with_retry(
    connect: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay_seconds: float = DEFAULT_RETRY_BASE_DELAY_SECONDS,
) -> T:
    """Run ``connect`` with exponential backoff on transient failures.

    Auth failures raise HulyAuthError immediately. Anything else becomes a
    HulyConnectionError and is retried ``max_retries`` more times.
    """
    max_attempts = max_retries + 1
    delay_seconds = base_delay_seconds

    for attempt in range(1, max_attempts + 1):
        try:
            return await connect()
        except Exception as exc:
            if is_auth_failure(exc):
                logger.error("Storage authentication failed: %s", exc)
                raise HulyAuthError(f"Storage authentication failed: {exc}") from exc

            if attempt >= max_attempts:
                logger.error("Storage connection failed after %d attempts: %s", max_attempts, exc)
                raise HulyConnectionError(f"Storage connection failed: {exc}", cause=exc) from exc

            logger.warning(
                "Storage connection failed on attempt %d/%d: %s (retrying in %.2fs)",
                attempt,
                max_attempts,
                exc,
                delay_seconds,
            )
            await asyncio.sleep(delay_seconds)
            delay_seconds *= 2

    raise AssertionError("unreachable")


class ConnectionState(str, Enum):
    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED_PERMANENT = "failed_permanent"
    FAILED_TRANSIENT = "failed_transient"


class StorageConnectionManager:
    """Owns at most one storage connection for the lifetime of a scope.

    Concurrent first callers share a single connect attempt. A permanent auth
    failure is remembered and re-raised; a transient failure lets the next
    caller try again.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token_provider: WorkspaceTokenProvider,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay_seconds: float = DEFAULT_RETRY_BASE_DELAY_SECONDS,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self.token_provider = token_provider
        self.max_retries = max_retries
        self.retry_base_delay_seconds = retry_base_delay_seconds
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._lock = asyncio.Lock()
        self._state = ConnectionState.UNCONNECTED
        self._connection: Optional[StorageConnection] = None
        self._auth_failure: Optional[HulyAuthError] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connection(self) -> Optional[StorageConnection]:
        return self._connection

    async def connect(self) -> StorageConnection:
        connection = self._connection
        if connection is not None:
            return connection

        async with self._lock:
            if self._connection is not None:
                return self._connection
            if self._auth_failure is not None:
                raise self._auth_failure

            self._state = ConnectionState.CONNECTING
            try:
                connection = await connect_storage_with_retry(
                    self._open,
                    max_retries=self.max_retries,
                    base_delay_seconds=self.retry_base_delay_seconds,
                )
            except HulyAuthError as exc:
                self._state = ConnectionState.FAILED_PERMANENT
                self._auth_failure = exc
                raise
            except HulyConnectionError:
                self._state = ConnectionState.FAILED_TRANSIENT
                raise
            except asyncio.CancelledError:
                self._state = ConnectionState.UNCONNECTED
                raise

            self._connection = connection
            self._state = ConnectionState.CONNECTED
            logger.info(
                "Connected to Huly storage at %s (workspace %s)",
                connection.base_url,
                connection.workspace_id,
            )
            return connection

    async def aclose(self) -> None:
        async with self._lock:
            connection, self._connection = self._connection, None
            self._auth_failure = None
            self._state = ConnectionState.UNCONNECTED
        if connection is not None:
            await connection.blob_client.aclose()

    async def _open(self) -> StorageConnection:
        return await open_storage_connection(
            self.token_provider,
            base_url=self.base_url,
            timeout_seconds=self.timeout_seconds,
            transport=self._transport,
        )
