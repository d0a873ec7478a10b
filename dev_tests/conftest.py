"""Shared pytest fixtures for Huly Storage Bridge tests."""

import pytest
import os
import sys
from typing import Callable, Dict, List, Optional

import httpx

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json_utils as json  # noqa: E402


HULY_BASE_URL = "https://huly.test"
ACCOUNTS_URL = "https://huly.test/_accounts"
WORKSPACE_UUID = "ws-uuid-0001"


# ============================================================================
# Fake Huly deployment
# ============================================================================

class FakeHulyBackend:
    """In-memory stand-in for a Huly deployment plus arbitrary remote hosts.

    Routes handled:
        GET  /config.json          -> server config (can fail N times)
        POST /_accounts            -> login / selectWorkspace JSON-RPC
        POST /upload               -> multipart blob write
        anything else              -> looked up in ``remote_files``
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.config_failures = 0
        self.login_error_code: Optional[str] = None
        self.upload_status = 200
        self.upload_body: Optional[bytes] = None
        self.blob_id = "blob-123"
        self.rpc_methods: List[str] = []
        self.remote_files: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    @property
    def upload_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == "huly.test" and r.url.path == "/upload"]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host != "huly.test":
            key = str(request.url)
            if key in self.remote_files:
                return self.remote_files[key](request)
            return httpx.Response(404, text="not found")

        if request.url.path == "/config.json":
            if self.config_failures > 0:
                self.config_failures -= 1
                return httpx.Response(503, text="service unavailable")
            return httpx.Response(200, json={"ACCOUNTS_URL": ACCOUNTS_URL, "UPLOAD_URL": "/upload"})

        if request.url.path == "/_accounts":
            body = json.loads(request.content)
            method = body["method"]
            self.rpc_methods.append(method)
            if method == "login":
                if self.login_error_code:
                    return httpx.Response(200, json={"error": {"code": self.login_error_code, "params": {}}})
                return httpx.Response(200, json={"result": {"token": "account-token"}})
            if method == "selectWorkspace":
                if request.headers.get("authorization") != "Bearer account-token":
                    return httpx.Response(200, json={"error": {"code": "platform:status:Unauthorized"}})
                return httpx.Response(
                    200,
                    json={"result": {"token": "workspace-token", "workspace": WORKSPACE_UUID, "endpoint": "wss://huly.test"}},
                )
            return httpx.Response(200, json={"error": {"code": "platform:status:UnknownMethod"}})

        if request.url.path == "/upload":
            if self.upload_body is not None:
                return httpx.Response(self.upload_status, content=self.upload_body)
            if self.upload_status != 200:
                return httpx.Response(self.upload_status, text="storage exploded")
            return httpx.Response(200, json=[{"key": "file", "id": self.blob_id}])

        return httpx.Response(404, text="not found")


@pytest.fixture
def huly_backend():
    return FakeHulyBackend()


@pytest.fixture
def huly_config(tmp_path):
    """Config pointing at the fake deployment, isolated from any local files."""
    from config import load_config

    env = {
        "HULY_URL": HULY_BASE_URL,
        "HULY_WORKSPACE": "acme",
        "HULY_EMAIL": "bot@acme.test",
        "HULY_PASSWORD": "s3cret",
    }
    return load_config(environ=env, config_path=tmp_path / ".hulyrc.json")


@pytest.fixture
def no_backoff(monkeypatch):
    """Make connection retries instant and record requested delays."""
    delays: List[float] = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr("services.storage_connection.asyncio.sleep", fake_sleep)
    return delays
