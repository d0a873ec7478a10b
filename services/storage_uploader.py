"""Upload orchestration: resolve, validate, connect, write."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from config import Config, config as default_config
from logging_utils import Phase, create_phase_logger
from models import UploadFileParams, UploadFileResult
from services.file_sources import FileSourceResolver
from services.huly_accounts import HulyAccountClient
from services.storage_connection import StorageConnection, StorageConnectionManager
from services.upload_errors import HulyConnectionError
from services.upload_validators import MAX_FILE_SIZE, validate_content_type, validate_file_size


logger = logging.getLogger(__name__)


class StorageScope:
    """Caller-owned upload context holding one cached storage connection.

    Use it as an async context manager so the connection is released on exit::

        async with StorageScope.from_config() as scope:
            result = await scope.upload_file(params)
    """

    def __init__(
        self,
        *,
        connection_manager: StorageConnectionManager,
        resolver: Optional[FileSourceResolver] = None,
        max_size: int = MAX_FILE_SIZE,
        verbose: bool = False,
    ) -> None:
        self.connection_manager = connection_manager
        self.resolver = resolver or FileSourceResolver(max_size=max_size)
        self.max_size = max_size
        self.verbose = verbose

    @classmethod
    def from_config(
        cls,
        cfg: Optional[Config] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "StorageScope":
        cfg = cfg or default_config
        huly = cfg.HULY
        storage = cfg.STORAGE
        token_provider = HulyAccountClient.from_settings(huly, transport=transport)
        connection_manager = StorageConnectionManager(
            base_url=huly.url,
            token_provider=token_provider,
            max_retries=storage.connect_max_retries,
            retry_base_delay_seconds=storage.connect_retry_base_delay_seconds,
            timeout_seconds=huly.connection_timeout_seconds,
            transport=transport,
        )
        return cls(
            connection_manager=connection_manager,
            resolver=FileSourceResolver.from_settings(storage, transport=transport),
            max_size=storage.max_size_bytes,
            verbose=storage.verbose_phases,
        )

    async def __aenter__(self) -> "StorageScope":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.connection_manager.aclose()

    async def ensure_connected(self) -> StorageConnection:
        return await self.connection_manager.connect()

    def url_for(self, blob_id: str) -> str:
        """Compose the access URL for a blob without any network I/O."""
        connection = self.connection_manager.connection
        if connection is None:
            raise HulyConnectionError("storage is not connected; upload a file or call ensure_connected() first")
        return connection.file_url(blob_id)

    async def upload_file(self, params: UploadFileParams) -> UploadFileResult:
        phase_logger = create_phase_logger(params.filename, verbose=self.verbose)

        with phase_logger.phase(Phase.RESOLVE, sub_label=params.source_kind):
            data = await self.resolver.resolve(params)
            phase_logger.debug(f"Resolved {len(data)} bytes from {params.source_kind}")

        with phase_logger.phase(Phase.VALIDATE):
            validate_file_size(data, params.filename, self.max_size)
            validate_content_type(params.content_type, params.filename)

        with phase_logger.phase(Phase.CONNECT):
            connection = await self.connection_manager.connect()

        with phase_logger.phase(Phase.WRITE):
            blob = await connection.blob_client.put(params.filename, data, params.content_type, len(data))

        result = UploadFileResult(
            blob_id=blob.blob_id,
            content_type=blob.content_type,
            size=blob.size,
            url=connection.file_url(blob.blob_id),
        )
        logger.info("Uploaded %s (%d bytes) as blob %s", params.filename, result.size, result.blob_id)
        phase_logger.log_timing_summary()
        return result
