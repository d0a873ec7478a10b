#!/usr/bin/env python3
"""
Huly Storage MCP Server

Model Context Protocol server exposing Huly file upload to AI assistants.

Tools:
    upload_file   - upload from a local path, a remote URL or base64 data
    get_file_url  - compose the access URL of an uploaded blob

Usage:
    # Local development
    python mcp_server/huly_storage_mcp_server.py

    # With Claude Code
    claude mcp add huly-storage -- python /path/to/huly_storage_mcp_server.py

Connection settings come from HULY_URL, HULY_WORKSPACE, HULY_EMAIL,
HULY_PASSWORD (or HULY_TOKEN) and an optional .hulyrc.json file.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from pydantic import ValidationError

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import json_utils as json  # noqa: E402
from config import ConfigValidationError, config  # noqa: E402
from logging_utils import setup_logging  # noqa: E402
from models import (  # noqa: E402
    FileUrlParams,
    UploadFileParams,
    file_url_params_json_schema,
    upload_file_params_json_schema,
)
from services.storage_uploader import StorageScope  # noqa: E402
from services.upload_errors import (  # noqa: E402
    MCP_INTERNAL_ERROR,
    MCP_INVALID_PARAMS,
    HulyStorageError,
)


logger = logging.getLogger(__name__)

SERVER_NAME = "huly-storage"
MCP_METHOD_NOT_FOUND = -32601


# =============================================================================
# Tool definitions
# =============================================================================

def tool_definitions() -> List[Tool]:
    return [
        Tool(
            name="upload_file",
            description="""Upload a file to Huly storage and return its blob id and access URL.

Provide exactly one source, checked in this order:
- filePath: a local file (preferred, keeps large payloads out of the conversation)
- fileUrl: a public http(s) URL the server downloads (internal addresses are refused)
- data: base64 content, optionally with a data: URL header (small files only)

Files are limited to 100 MiB and the contentType must be on the allowlist.""",
            inputSchema=upload_file_params_json_schema(),
        ),
        Tool(
            name="get_file_url",
            description="Return the access URL for a blob previously stored with upload_file.",
            inputSchema=file_url_params_json_schema(),
        ),
    ]


# =============================================================================
# Tool dispatch
# =============================================================================

def _error_payload(kind: str, message: str, code: int) -> Dict[str, Any]:
    return {"error": {"kind": kind, "message": message, "code": code}}


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "request"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


async def handle_tool_call(scope: StorageScope, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Run one tool call against the scope and return a JSON-ready dict."""
    try:
        if name == "upload_file":
            params = UploadFileParams.model_validate(arguments or {})
            result = await scope.upload_file(params)
            return result.to_wire()
        if name == "get_file_url":
            url_params = FileUrlParams.model_validate(arguments or {})
            await scope.ensure_connected()
            return {"blobId": url_params.blob_id, "url": scope.url_for(url_params.blob_id)}
        return _error_payload("UnknownTool", f"Unknown tool: {name}", MCP_METHOD_NOT_FOUND)
    except ValidationError as exc:
        return _error_payload("ValidationError", _format_validation_error(exc), MCP_INVALID_PARAMS)
    except HulyStorageError as exc:
        logger.warning("Tool %s failed: %s", name, exc)
        return {"error": exc.to_dict()}


def build_server(scope: StorageScope) -> Server:
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return tool_definitions()

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        try:
            result = await handle_tool_call(scope, name, arguments)
        except Exception as e:
            logger.exception("Unexpected failure in tool %s", name)
            result = _error_payload("InternalError", str(e), MCP_INTERNAL_ERROR)
        return [TextContent(type="text", text=json.dumps(result, indent=2))]

    return server


# =============================================================================
# Main Entry Point
# =============================================================================

async def main() -> int:
    """Run the MCP server over stdio."""
    setup_logging(config.LOG_LEVEL)
    try:
        scope = StorageScope.from_config(config)
    except ConfigValidationError as exc:
        print(f"Configuration error ({exc.field or 'config'}): {exc}", file=sys.stderr)
        return 1

    print("Huly Storage MCP Server", file=sys.stderr)
    print(f"Huly URL: {config.HULY.url}", file=sys.stderr)
    print(f"Workspace: {config.HULY.workspace}", file=sys.stderr)

    async with scope:
        server = build_server(scope)
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
