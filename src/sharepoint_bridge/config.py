"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from sharepoint_bridge.errors import ConfigurationError

SERVER_MODES = ("mcp", "api", "dual")
CLIENT_MODE = "api-client"
LOG_LEVELS = ("error", "warn", "info", "debug")
MIN_AUTH_TOKEN_LENGTH = 32
REDACTED = "***REDACTED***"

_GUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


@dataclass(frozen=True)
class AppConfig:
    """Centralized application configuration.

    Required fields have no defaults; ``load_config`` raises
    ConfigurationError when the corresponding environment variable is
    missing or malformed. Operational knobs have defaults that can be
    overridden via environment variables.
    """

    # Required, no defaults
    client_id: str
    tenant_id: str
    site_url: str
    cert_path: str
    cert_password: str

    # Document library
    doc_library: str = ""
    drive_name: str = "Documents"
    tree_default_depth: int = 3
    tree_max_depth: int = 15
    graph_timeout: float = 30.0
    token_refresh_margin: float = 120.0

    # Server
    server_mode: str = "mcp"
    host: str = "localhost"
    port: int = 3000
    log_level: str = "info"
    log_file: str | None = None

    # API
    auth_tokens: frozenset[str] = field(default_factory=frozenset)
    cors_origins: tuple[str, ...] = ("*",)

    @property
    def serves_api(self) -> bool:
        """True when the HTTP/WebSocket server runs in this process."""
        return self.server_mode in ("api", "dual")

    def sanitized(self) -> dict[str, Any]:
        """Return a loggable view of the configuration with secrets redacted."""
        return {
            "client_id": self.client_id,
            "tenant_id": self.tenant_id,
            "site_url": self.site_url,
            "cert_path": self.cert_path,
            "cert_password": REDACTED,
            "doc_library": self.doc_library,
            "drive_name": self.drive_name,
            "server_mode": self.server_mode,
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level,
            "auth_tokens": [REDACTED for _ in self.auth_tokens],
            "cors_origins": list(self.cors_origins),
        }


def _required(name: str) -> str:
    value = os.environ.get(name, "").strip()
    if not value:
        raise ConfigurationError(f"Required environment variable {name} is not set")
    return value


def _int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass(frozen=True)
class RemoteApiConfig:
    """Configuration of the api-client mode, which holds no certificate.

    Tools run against a bridge reachable at ``base_url``, authenticating with
    one of its caller tokens.
    """

    base_url: str
    api_token: str = field(repr=False)
    timeout: float = 30.0
    log_level: str = "info"
    log_file: str | None = None

    def sanitized(self) -> dict[str, Any]:
        return {"base_url": self.base_url, "api_token": REDACTED, "timeout": self.timeout}


def requested_server_mode() -> str:
    """Return SERVER_MODE as configured, before any other variable is read."""
    return os.environ.get("SERVER_MODE", "").strip().lower() or "mcp"


def load_config() -> AppConfig:
    """Construct and validate an AppConfig from environment variables.

    Required environment variables:
        SHP_ID_APP: Azure AD application (client) ID, GUID format.
        SHP_TENANT_ID: Azure AD tenant ID, GUID format.
        SHP_SITE_URL: SharePoint site URL (https://<tenant>.sharepoint.com/sites/<name>).
        SHP_CERT_PFX_PATH: Path to the PKCS#12 (.pfx) certificate container.
        SHP_CERT_PFX_PASSWORD: Password protecting the certificate container.

    Optional environment variables (with defaults):
        SHP_DOC_LIBRARY: Base library path prefixed onto every caller path (default: "").
        SHP_DRIVE_NAME: Name of the site drive to use (default: Documents).
        SHP_TREE_DEFAULT_DEPTH: Folder tree depth when callers pass none (default: 3).
        SHP_MAX_DEPTH: Upper bound on requested folder tree depth (default: 15).
        SHP_GRAPH_TIMEOUT: Graph request timeout in seconds (default: 30).
        SHP_TOKEN_REFRESH_MARGIN: Seconds before expiry a service token is refreshed (default: 120).
        SERVER_MODE: mcp, api or dual (default: mcp).
        HOST / PORT: API bind address (default: localhost / 3000).
        LOG_LEVEL: error, warn, info or debug (default: info).
        LOG_FILE: Optional path of an additional log file.
        API_AUTH_TOKENS: Comma-separated caller tokens, required in api and dual mode.
        CORS_ORIGINS: Comma-separated allowed origins (default: *).

    Returns:
        Validated AppConfig instance.

    Raises:
        ConfigurationError: If a required variable is missing or any value is invalid.
    """
    config = AppConfig(
        client_id=_required("SHP_ID_APP"),
        tenant_id=_required("SHP_TENANT_ID"),
        site_url=_required("SHP_SITE_URL"),
        cert_path=_required("SHP_CERT_PFX_PATH"),
        cert_password=_required("SHP_CERT_PFX_PASSWORD"),
        doc_library=os.environ.get("SHP_DOC_LIBRARY", "").strip(),
        drive_name=os.environ.get("SHP_DRIVE_NAME", "").strip() or "Documents",
        tree_default_depth=_int("SHP_TREE_DEFAULT_DEPTH", 3),
        tree_max_depth=_int("SHP_MAX_DEPTH", 15),
        graph_timeout=_float("SHP_GRAPH_TIMEOUT", 30.0),
        token_refresh_margin=_float("SHP_TOKEN_REFRESH_MARGIN", 120.0),
        server_mode=os.environ.get("SERVER_MODE", "").strip().lower() or "mcp",
        host=os.environ.get("HOST", "").strip() or "localhost",
        port=_int("PORT", 3000),
        log_level=os.environ.get("LOG_LEVEL", "").strip().lower() or "info",
        log_file=os.environ.get("LOG_FILE", "").strip() or None,
        auth_tokens=frozenset(_csv(os.environ.get("API_AUTH_TOKENS", ""))),
        cors_origins=tuple(_csv(os.environ.get("CORS_ORIGINS", "")) or ["*"]),
    )
    validate_config(config)
    return config


def load_auth_tokens() -> frozenset[str]:
    """Re-read only the caller token set, for token rotation without a restart."""
    return frozenset(_csv(os.environ.get("API_AUTH_TOKENS", "")))


def validate_config(config: AppConfig) -> None:
    """Check field formats and cross-field rules.

    Raises:
        ConfigurationError: On the first rule that does not hold.
    """
    if not _GUID_RE.match(config.client_id):
        raise ConfigurationError("SHP_ID_APP must be a valid GUID")
    if not _GUID_RE.match(config.tenant_id):
        raise ConfigurationError("SHP_TENANT_ID must be a valid GUID")

    parsed = urlparse(config.site_url)
    site_path = parsed.path.strip("/")
    if parsed.scheme != "https" or not parsed.netloc or not site_path.startswith("sites/"):
        raise ConfigurationError(
            "SHP_SITE_URL must look like https://<tenant>.sharepoint.com/sites/<name>"
        )

    if not Path(config.cert_path).is_file():
        raise ConfigurationError(f"Certificate file not found: {config.cert_path}")

    if config.server_mode not in SERVER_MODES:
        raise ConfigurationError(f"SERVER_MODE must be one of: {', '.join((*SERVER_MODES, CLIENT_MODE))}")
    if not 1 <= config.port <= 65535:
        raise ConfigurationError("PORT must be between 1 and 65535")
    if config.log_level not in LOG_LEVELS:
        raise ConfigurationError(f"LOG_LEVEL must be one of: {', '.join(LOG_LEVELS)}")
    if config.tree_default_depth < 1 or config.tree_max_depth < config.tree_default_depth:
        raise ConfigurationError(
            "SHP_TREE_DEFAULT_DEPTH must be at least 1 and not exceed SHP_MAX_DEPTH"
        )
    if config.graph_timeout <= 0:
        raise ConfigurationError("SHP_GRAPH_TIMEOUT must be positive")

    if config.serves_api:
        if not config.auth_tokens:
            raise ConfigurationError("API_AUTH_TOKENS is required when running in api or dual mode")
        if any(len(token) < MIN_AUTH_TOKEN_LENGTH for token in config.auth_tokens):
            raise ConfigurationError(
                f"API auth tokens must be at least {MIN_AUTH_TOKEN_LENGTH} characters long"
            )


def load_remote_api_config() -> RemoteApiConfig:
    """Construct and validate a RemoteApiConfig from environment variables.

    Required environment variables:
        SHAREPOINT_API_URL: Base URL of a bridge running in api or dual mode.
        SHAREPOINT_API_TOKEN: One of that bridge's API_AUTH_TOKENS.

    Optional environment variables (with defaults):
        SHAREPOINT_API_TIMEOUT: Request timeout in seconds (default: 30).
        LOG_LEVEL / LOG_FILE: As for the other modes.

    Raises:
        ConfigurationError: If a required variable is missing or any value is invalid.
    """
    config = RemoteApiConfig(
        base_url=_required("SHAREPOINT_API_URL").rstrip("/"),
        api_token=_required("SHAREPOINT_API_TOKEN"),
        timeout=_float("SHAREPOINT_API_TIMEOUT", 30.0),
        log_level=os.environ.get("LOG_LEVEL", "").strip().lower() or "info",
        log_file=os.environ.get("LOG_FILE", "").strip() or None,
    )
    parsed = urlparse(config.base_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError("SHAREPOINT_API_URL must be an http(s) URL")
    if config.timeout <= 0:
        raise ConfigurationError("SHAREPOINT_API_TIMEOUT must be positive")
    if config.log_level not in LOG_LEVELS:
        raise ConfigurationError(f"LOG_LEVEL must be one of: {', '.join(LOG_LEVELS)}")
    return config
