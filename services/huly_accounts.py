"""Exchange Huly credentials for a workspace-scoped token."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import httpx

import json_utils as json
from config import HulySettings


logger = logging.getLogger(__name__)


class AccountServiceError(Exception):
    """Raised when the account service answers with a JSON-RPC error."""

    def __init__(self, status_code: Optional[str], message: str) -> None:
        detail = f"{status_code}: {message}" if status_code else message
        super().__init__(detail)
        self.status_code = status_code
        self.message = message


@dataclass(frozen=True)
class ServerConfig:
    """Subset of the deployment's /config.json the storage bridge needs."""

    accounts_url: str
    upload_url: Optional[str] = None


@dataclass(frozen=True)
class WorkspaceAccess:
    token: str = field(repr=False)
    workspace_id: str
    server_config: ServerConfig


class WorkspaceTokenProvider(Protocol):
    async def get_workspace_access(self) -> WorkspaceAccess:
        ...


class HulyAccountClient:
    """Talks to the Huly account service to obtain a workspace token.

    The flow mirrors the platform's own API client: read /config.json to find
    the account service, log in with email and password (or use a pre-issued
    token), then select the workspace to receive a workspace token and id.
    """

    def __init__(
        self,
        *,
        base_url: str,
        workspace: str,
        email: Optional[str] = None,
        password: Optional[str] = None,
        token: Optional[str] = None,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not token and not (email and password):
            raise ValueError("Either token or email and password must be provided")
        self.base_url = base_url.rstrip("/")
        self.workspace = workspace
        self.email = email
        self._password = password
        self._token = token
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: HulySettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "HulyAccountClient":
        settings.require_connection_fields()
        return cls(
            base_url=settings.url,
            workspace=settings.workspace,
            email=settings.email,
            password=settings.password.get_secret_value() if settings.password else None,
            token=settings.token.get_secret_value() if settings.uses_token_auth else None,
            timeout_seconds=settings.connection_timeout_seconds,
            transport=transport,
        )

    async def get_workspace_access(self) -> WorkspaceAccess:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds),
            follow_redirects=False,
            trust_env=False,
            transport=self._transport,
        ) as client:
            server_config = await self.load_server_config(client)

            account_token = self._token
            if not account_token:
                login_info = await self._rpc(
                    client,
                    server_config.accounts_url,
                    "login",
                    {"email": self.email, "password": self._password},
                )
                account_token = self._require_str(login_info, "token", "login")

            workspace_info = await self._rpc(
                client,
                server_config.accounts_url,
                "selectWorkspace",
                {"workspaceUrl": self.workspace, "kind": "external"},
                token=account_token,
            )

        access = WorkspaceAccess(
            token=self._require_str(workspace_info, "token", "selectWorkspace"),
            workspace_id=self._require_str(workspace_info, "workspace", "selectWorkspace"),
            server_config=server_config,
        )
        logger.debug("Selected Huly workspace %s (%s)", self.workspace, access.workspace_id)
        return access

    async def load_server_config(self, client: httpx.AsyncClient) -> ServerConfig:
        response = await client.get(f"{self.base_url}/config.json")
        response.raise_for_status()
        data = json.loads(response.content)
        if not isinstance(data, dict):
            raise AccountServiceError(None, "server config.json is not a JSON object")

        accounts_url = data.get("ACCOUNTS_URL")
        if not isinstance(accounts_url, str) or not accounts_url:
            raise AccountServiceError(None, "server config.json has no ACCOUNTS_URL")
        return ServerConfig(
            accounts_url=accounts_url,
            upload_url=data.get("UPLOAD_URL") or None,
        )

    async def _rpc(
        self,
        client: httpx.AsyncClient,
        accounts_url: str,
        method: str,
        params: Dict[str, Any],
        *,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        response = await client.post(
            accounts_url,
            content=json.dumps({"method": method, "params": params}),
            headers=headers,
        )
        response.raise_for_status()
        body = json.loads(response.content)

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            logger.debug("Account service %s failed with %s", method, code)
            raise AccountServiceError(code, f"{method} rejected by account service")

        result = body.get("result") if isinstance(body, dict) else None
        if not isinstance(result, dict):
            raise AccountServiceError(None, f"{method} returned no result")
        return result

    @staticmethod
    def _require_str(payload: Dict[str, Any], key: str, method: str) -> str:
        value = payload.get(key)
        if not isinstance(value, str) or not value:
            raise AccountServiceError(None, f"{method} response is missing '{key}'")
        return value
