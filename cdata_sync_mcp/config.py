"""Environment-driven settings for the CData Sync MCP server."""

import logging
import os
import sys
from dataclasses import dataclass, field, replace

from dotenv import load_dotenv

load_dotenv()

DEFAULT_BASE_URL = "http://localhost:8181/api.rsc"
DEFAULT_WORKSPACE = "default"
TRANSPORT_MODES = ("stdio", "http", "both")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{value}'")


@dataclass
class SyncConfig:
    """Connection settings for the CData Sync REST API."""

    base_url: str = DEFAULT_BASE_URL
    auth_token: str | None = None
    username: str | None = None
    password: str | None = None
    workspace: str = DEFAULT_WORKSPACE
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "SyncConfig":
        return cls(
            base_url=os.getenv("CDATA_BASE_URL", DEFAULT_BASE_URL),
            auth_token=os.getenv("CDATA_AUTH_TOKEN") or None,
            username=os.getenv("CDATA_USERNAME") or None,
            password=os.getenv("CDATA_PASSWORD") or None,
            workspace=os.getenv("CDATA_WORKSPACE") or DEFAULT_WORKSPACE,
            timeout=float(_env_int("CDATA_REQUEST_TIMEOUT", 30)),
        )

    @property
    def auth_type(self) -> str:
        if self.auth_token:
            return "token"
        if self.username:
            return "basic"
        return "none"

    @property
    def has_credentials(self) -> bool:
        return bool(self.auth_token or (self.username and self.password))

    def copy(self, **changes) -> "SyncConfig":
        return replace(self, **changes)


@dataclass
class ServerSettings:
    """Transport and process settings."""

    transport_mode: str = "stdio"
    http_host: str = "0.0.0.0"
    http_port: int = 3000
    http_path: str = "/mcp/v1"
    http_cors: bool = True
    http_timeout: float = 30.0
    sse_port: int = 3001
    log_level: str = "INFO"
    sync: SyncConfig = field(default_factory=SyncConfig)

    @classmethod
    def from_env(cls) -> "ServerSettings":
        mode = os.getenv("MCP_TRANSPORT_MODE", "stdio").strip().lower()
        if mode not in TRANSPORT_MODES:
            raise ValueError(
                f"Invalid MCP_TRANSPORT_MODE '{mode}'. Expected one of: {', '.join(TRANSPORT_MODES)}"
            )
        return cls(
            transport_mode=mode,
            http_host=os.getenv("MCP_HTTP_HOST", "0.0.0.0"),
            http_port=_env_int("MCP_HTTP_PORT", 3000),
            http_path="/" + os.getenv("MCP_HTTP_PATH", "/mcp/v1").strip("/"),
            http_cors=_env_bool("MCP_HTTP_CORS", True),
            http_timeout=float(_env_int("MCP_HTTP_TIMEOUT", 30)),
            sse_port=_env_int("SSE_PORT", 3001),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            sync=SyncConfig.from_env(),
        )


def configure_logging(level: str = "INFO") -> None:
    """Send all log output to stderr; stdout carries the stdio MCP stream."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
