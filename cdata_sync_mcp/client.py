"""HTTP client for the CData Sync REST API."""

import base64
import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import httpx

from .config import DEFAULT_WORKSPACE, SyncConfig
from .converters import parse_json_preserving_ids, stringify_ids
from .errors import AuthenticationRequired, ConfigurationError

logger = logging.getLogger(__name__)

USER_AGENT = "cdata-sync-mcp"

# Per-task workspace override. Each MCP tool call runs in its own task, so
# concurrent calls never see each other's override.
_workspace_override: ContextVar[str | None] = ContextVar("cdata_workspace_override", default=None)


class CDataSyncClient:
    """Thin async wrapper around httpx for CData Sync's api.rsc endpoints."""

    def __init__(self, config: SyncConfig):
        self.config = config

    @property
    def workspace(self) -> str:
        return _workspace_override.get() or self.config.workspace or DEFAULT_WORKSPACE

    @contextmanager
    def use_workspace(self, workspace_id: str | None) -> Iterator[None]:
        """Route every request made inside the block to another workspace."""
        if not workspace_id:
            yield
            return
        previous = self.workspace
        token = _workspace_override.set(workspace_id)
        logger.debug("Workspace override: '%s' -> '%s'", previous, workspace_id)
        try:
            yield
        finally:
            _workspace_override.reset(token)
            logger.debug("Workspace override restored to '%s'", previous)

    def build_url(self, endpoint: str) -> str:
        base_url = (self.config.base_url or "").replace("/$oas", "").rstrip("/")
        if not base_url:
            raise ConfigurationError(
                "Base URL is not configured. Use configure_sync_server to set the CData Sync API URL."
            )
        return f"{base_url}{endpoint}"

    def build_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        if self.config.auth_token:
            headers["x-cdata-authtoken"] = self.config.auth_token
        elif self.config.username and self.config.password:
            credentials = f"{self.config.username}:{self.config.password}"
            encoded = base64.b64encode(credentials.encode()).decode()
            headers["Authorization"] = f"Basic {encoded}"
        return headers

    async def request(
        self,
        method: str,
        endpoint: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send one request and return the decoded response body.

        A body is sent whenever one is given, including for GET and DELETE
        (the workspace by-id endpoints take their Id in the body).
        """
        url = self.build_url(endpoint)
        query = {k: v for k, v in (params or {}).items() if v is not None}
        workspace = self.workspace
        if workspace and workspace != DEFAULT_WORKSPACE:
            query.setdefault("workspace", workspace)
        content = json.dumps(stringify_ids(body)) if body is not None else None

        async with httpx.AsyncClient() as client:
            try:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self.build_headers(),
                    params=query or None,
                    content=content,
                    timeout=self.config.timeout,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                self._log_error(method, url, e)
                if e.response.status_code == 401 and not self.config.has_credentials:
                    raise AuthenticationRequired() from e
                raise
            except httpx.RequestError as e:
                logger.error("CData Sync API error: %s %s - %s", method, url, e)
                raise

        return self._decode(response)

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, body: dict[str, Any] | None = None) -> Any:
        return await self.request("POST", endpoint, body=body)

    async def put(self, endpoint: str, body: dict[str, Any] | None = None) -> Any:
        return await self.request("PUT", endpoint, body=body)

    async def patch(self, endpoint: str, body: dict[str, Any] | None = None) -> Any:
        return await self.request("PATCH", endpoint, body=body)

    async def delete(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("DELETE", endpoint, params=params)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return parse_json_preserving_ids(response.text)
        except ValueError:
            return response.text

    @staticmethod
    def _log_error(method: str, url: str, error: httpx.HTTPStatusError) -> None:
        logger.warning(
            "CData Sync API error: %s %s - status %s", method, url, error.response.status_code
        )
        if error.response.content:
            logger.debug("Response data: %s", error.response.text)
