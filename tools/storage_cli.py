"""Command-line helpers for uploading files to Huly storage."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pydantic import ValidationError  # noqa: E402

import json_utils as json  # noqa: E402
from config import ConfigValidationError, config  # noqa: E402
from logging_utils import setup_logging  # noqa: E402
from models import UploadFileParams  # noqa: E402
from services.storage_uploader import StorageScope  # noqa: E402
from services.upload_errors import HulyStorageError  # noqa: E402
from services.url_safety import is_blocked_url  # noqa: E402


class CLIError(Exception):
    """Raised when CLI validation fails."""


def _open_scope() -> StorageScope:
    try:
        return StorageScope.from_config(config)
    except ConfigValidationError as exc:
        raise CLIError(f"Configuration error: {exc}") from exc


async def _upload(args: argparse.Namespace) -> dict:
    try:
        params = UploadFileParams(
            filename=args.filename,
            content_type=args.content_type,
            file_path=args.file_path,
            file_url=args.file_url,
            data=args.data,
        )
    except ValidationError as exc:
        raise CLIError(f"Invalid upload request: {exc.errors()[0].get('msg')}") from exc

    async with _open_scope() as scope:
        try:
            result = await scope.upload_file(params)
        except HulyStorageError as exc:
            raise CLIError(str(exc)) from exc
    return result.to_wire()


async def _file_url(args: argparse.Namespace) -> dict:
    async with _open_scope() as scope:
        try:
            await scope.ensure_connected()
        except HulyStorageError as exc:
            raise CLIError(str(exc)) from exc
        return {"blobId": args.blob_id, "url": scope.url_for(args.blob_id)}


def _command_upload(args: argparse.Namespace) -> int:
    if args.filename is None:
        source = args.file_path or args.file_url
        if not source:
            raise CLIError("--filename is required when uploading --data")
        args.filename = Path(source.split("?", 1)[0].rstrip("/")).name or "upload"
    print(json.dumps(asyncio.run(_upload(args)), indent=2))
    return 0


def _command_file_url(args: argparse.Namespace) -> int:
    print(json.dumps(asyncio.run(_file_url(args)), indent=2))
    return 0


def _command_check_url(args: argparse.Namespace) -> int:
    blocked = is_blocked_url(args.url)
    print(f"{'BLOCKED' if blocked else 'ALLOWED'}  {args.url}")
    return 1 if blocked else 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Huly storage upload tools")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL for this run")
    subparsers = parser.add_subparsers(dest="command", required=True)

    upload_parser = subparsers.add_parser("upload", help="Upload a file and print the resulting blob")
    source = upload_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file-path", help="Local file to upload")
    source.add_argument("--file-url", help="Remote http(s) URL to download and upload")
    source.add_argument("--data", help="Base64 payload (data: URL headers are accepted)")
    upload_parser.add_argument("--filename", default=None, help="Stored filename (defaults to the source name)")
    upload_parser.add_argument("--content-type", required=True, help="Declared MIME type, e.g. application/pdf")
    upload_parser.set_defaults(func=_command_upload)

    url_parser = subparsers.add_parser("file-url", help="Print the access URL for a stored blob")
    url_parser.add_argument("--blob-id", required=True, help="Blob identifier returned by upload")
    url_parser.set_defaults(func=_command_file_url)

    check_parser = subparsers.add_parser("check-url", help="Report whether a URL passes the SSRF filter")
    check_parser.add_argument("url", help="URL to check")
    check_parser.set_defaults(func=_command_check_url)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level or config.LOG_LEVEL)
    try:
        return args.func(args)
    except CLIError as exc:
        parser.error(str(exc))
        return 2


if __name__ == "__main__":  # pragma: no cover - manual invocation only
    raise SystemExit(main())
