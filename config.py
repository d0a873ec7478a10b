"""
Configuration for the Huly Storage Bridge
=========================================

Settings are loaded from environment variables (a local .env file is honoured)
and from an optional .hulyrc.json file in the working directory.

Credentials (email, password, token) are read from the environment only. The
config file may carry non-sensitive values: url, workspace, connectionTimeout.
Environment variables always override the file. Upload pipeline tuning
(HULY_FETCH_TIMEOUT_SECONDS, HULY_CONNECT_MAX_RETRIES, HULY_URL_USER_AGENT,
HULY_VERBOSE_PHASES) comes from the environment only.
"""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

# Use optimized JSON
import json_utils as json
from pydantic import BaseModel, Field, SecretStr, ValidationError
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


CONFIG_FILE_NAME = ".hulyrc.json"
DEFAULT_CONNECTION_TIMEOUT_MS = 30000


class ConfigValidationError(ValueError):
    """Raised when a configuration value is missing or malformed."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class ConfigFileError(Exception):
    """Raised when .hulyrc.json cannot be read or parsed."""

    def __init__(self, message: str, path: str) -> None:
        super().__init__(f"{message}: {path}")
        self.path = path


class HulySettings(BaseModel):
    """Connection settings for the Huly platform."""

    url: Optional[str] = Field(default=None, description="Base URL of the Huly deployment")
    workspace: Optional[str] = Field(default=None, description="Workspace URL slug to select")
    email: Optional[str] = Field(default=None, description="Account email for password login")
    password: Optional[SecretStr] = Field(default=None, description="Account password for password login")
    token: Optional[SecretStr] = Field(default=None, description="Pre-issued account token (skips login)")
    connection_timeout_ms: int = Field(
        default=DEFAULT_CONNECTION_TIMEOUT_MS,
        gt=0,
        description="Timeout applied to account and storage HTTP calls, in milliseconds",
    )

    @property
    def connection_timeout_seconds(self) -> float:
        return self.connection_timeout_ms / 1000.0

    @property
    def uses_token_auth(self) -> bool:
        return self.token is not None and bool(self.token.get_secret_value().strip())

    def require_connection_fields(self) -> None:
        """Ensure everything needed to open a storage connection is present."""
        if not self.url or not _is_http_url(self.url):
            raise ConfigValidationError("HULY_URL must be a valid http or https URL", field="url")
        if not self.workspace or not self.workspace.strip():
            raise ConfigValidationError("HULY_WORKSPACE must not be empty", field="workspace")
        if self.uses_token_auth:
            return
        if not self.email or not self.email.strip():
            raise ConfigValidationError(
                "HULY_EMAIL is required unless HULY_TOKEN is set", field="email"
            )
        if self.password is None or not self.password.get_secret_value().strip():
            raise ConfigValidationError(
                "HULY_PASSWORD is required unless HULY_TOKEN is set", field="password"
            )


class StorageSettings(BaseModel):
    """Upload pipeline limits and retry policy."""

    max_size_bytes: int = Field(
        default=100 * 1024 * 1024,
        ge=1,
        description="Maximum accepted file size in bytes",
    )
    fetch_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Hard wall-clock bound for downloading a remote file",
    )
    connect_max_retries: int = Field(
        default=2,
        ge=0,
        description="Additional connection attempts after a transient failure",
    )
    connect_retry_base_delay_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Initial backoff delay; doubled after every failed attempt",
    )
    url_user_agent: str = Field(
        default="HulyStorageBridge/1.0 (+https://huly.io)",
        description="User-Agent header sent when fetching remote files",
    )
    verbose_phases: bool = Field(
        default=False,
        description="Emit debug-level detail inside upload phase logs",
    )


class Config(BaseModel):
    """Top-level settings container."""

    HULY: HulySettings = Field(default_factory=HulySettings, description="Huly platform connection settings")
    STORAGE: StorageSettings = Field(default_factory=StorageSettings, description="Upload pipeline settings")
    LOG_LEVEL: str = Field(default="INFO", description="Root logging level")


def _is_http_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _env_value(environ: Mapping[str, str], key: str) -> Optional[str]:
    value = environ.get(key)
    if value is None or not value.strip():
        return None
    return value.strip()


def load_file_config(path: Path) -> Dict[str, Any]:
    """Read the optional .hulyrc.json file; a missing file yields an empty dict."""
    if not path.exists():
        return {}
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigFileError("Failed to read config file", str(path)) from exc
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ConfigFileError("Config file is not valid JSON", str(path)) from exc
    if not isinstance(data, dict):
        raise ConfigFileError("Config file must contain a JSON object", str(path))

    file_values: Dict[str, Any] = {}
    url = data.get("url")
    if url is not None:
        if not isinstance(url, str) or not _is_http_url(url):
            raise ConfigFileError("Config file validation failed: url must be http or https", str(path))
        file_values["url"] = url
    workspace = data.get("workspace")
    if workspace is not None:
        if not isinstance(workspace, str) or not workspace.strip():
            raise ConfigFileError("Config file validation failed: workspace must not be empty", str(path))
        file_values["workspace"] = workspace
    timeout = data.get("connectionTimeout")
    if timeout is not None:
        if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0:
            raise ConfigFileError(
                "Config file validation failed: connectionTimeout must be a positive integer", str(path)
            )
        file_values["connection_timeout_ms"] = timeout
    return file_values


def load_storage_settings(environ: Mapping[str, str]) -> StorageSettings:
    """Apply HULY_* overrides to the upload pipeline settings.

    Unparseable or non-positive numbers are ignored. The size ceiling is fixed
    at its default.
    """
    storage = StorageSettings()

    fetch_timeout_override = _env_value(environ, "HULY_FETCH_TIMEOUT_SECONDS")
    if fetch_timeout_override:
        try:
            parsed = float(fetch_timeout_override)
            if parsed > 0:
                storage.fetch_timeout_seconds = parsed
        except ValueError:
            pass

    retries_override = _env_value(environ, "HULY_CONNECT_MAX_RETRIES")
    if retries_override:
        try:
            parsed = int(retries_override)
            if parsed >= 0:
                storage.connect_max_retries = parsed
        except ValueError:
            pass

    user_agent_override = _env_value(environ, "HULY_URL_USER_AGENT")
    if user_agent_override:
        storage.url_user_agent = user_agent_override

    verbose_override = _env_value(environ, "HULY_VERBOSE_PHASES")
    if verbose_override:
        storage.verbose_phases = verbose_override.lower() in {"1", "true", "yes", "on"}

    return storage


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[Path] = None,
) -> Config:
    """Build a Config from the environment and the optional config file."""
    env = os.environ if environ is None else environ
    path = config_path if config_path is not None else Path.cwd() / CONFIG_FILE_NAME
    huly_values = load_file_config(path)

    env_url = _env_value(env, "HULY_URL")
    if env_url is not None:
        huly_values["url"] = env_url
    env_workspace = _env_value(env, "HULY_WORKSPACE")
    if env_workspace is not None:
        huly_values["workspace"] = env_workspace

    env_timeout = _env_value(env, "HULY_CONNECTION_TIMEOUT")
    if env_timeout is not None:
        try:
            timeout_ms = int(env_timeout)
        except ValueError as exc:
            raise ConfigValidationError(
                "Invalid value for HULY_CONNECTION_TIMEOUT", field="HULY_CONNECTION_TIMEOUT"
            ) from exc
        if timeout_ms <= 0:
            raise ConfigValidationError(
                "HULY_CONNECTION_TIMEOUT must be positive", field="HULY_CONNECTION_TIMEOUT"
            )
        huly_values["connection_timeout_ms"] = timeout_ms

    for key, field_name in (("HULY_EMAIL", "email"), ("HULY_PASSWORD", "password"), ("HULY_TOKEN", "token")):
        value = _env_value(env, key)
        if value is not None:
            huly_values[field_name] = value

    try:
        huly = HulySettings(**huly_values)
    except ValidationError as exc:
        raise ConfigValidationError(f"Invalid Huly settings: {exc}") from exc

    return Config(
        HULY=huly,
        STORAGE=load_storage_settings(env),
        LOG_LEVEL=(_env_value(env, "LOG_LEVEL") or "INFO").upper(),
    )


config = load_config()
