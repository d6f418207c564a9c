"""
Tool-hosting platform client (Composio).

Async HTTP client for the pieces of the platform API used to provision
gateways: auth configs and MCP servers.

Usage:
    async with ComposioClient(api_key="...") as client:
        auth_config_id = await client.get_or_create_auth_config("gmail")
        server = await client.create_toolkit_server("gmail-toolkit-mcp", [auth_config_id])
        print(server.url)
"""

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from alfred_sdk.config import DEFAULT_COMPOSIO_BASE_URL, ComposioConfig
from alfred_sdk.errors import GatewayError, PlatformAuthError, PlatformConnectionError

logger = logging.getLogger(__name__)


# =============================================================================
# Response Types
# =============================================================================


class MCPServer(BaseModel):
    """Gateway server as returned by the platform."""
    id: str
    url: str
    tools: list[str] = Field(default_factory=list)
    name: str | None = None


# =============================================================================
# Client
# =============================================================================


class ComposioClient:
    """
    Platform API client.

    Transport failures raise ``PlatformConnectionError``, 401/403 responses
    raise ``PlatformAuthError`` and any other HTTP error raises
    ``GatewayError``. The ``httpx`` exception is chained as the cause.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_COMPOSIO_BASE_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise PlatformAuthError("Composio API key not configured")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-API-Key": api_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: ComposioConfig) -> "ComposioClient":
        return cls(api_key=config.api_key or "", base_url=config.base_url, timeout=config.timeout)

    async def __aenter__(self) -> "ComposioClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # -------------------------------------------------------------------------
    # Auth configs
    # -------------------------------------------------------------------------

    async def list_auth_configs(self, toolkit: str) -> list[dict[str, Any]]:
        data = await self._request("GET", "/v3/auth_configs", params={"toolkit": toolkit})
        return data.get("items") or []

    async def create_auth_config(self, toolkit: str) -> str:
        """Create a platform-managed auth config. Returns its id."""
        data = await self._request(
            "POST",
            "/v3/auth_configs",
            json={
                "toolkit": {"slug": toolkit},
                "name": toolkit,
                "auth_config": {"type": "use_composio_managed_auth"},
            },
        )
        auth_config = data.get("auth_config") or {}
        auth_config_id = auth_config.get("id") or data.get("id")
        if not auth_config_id:
            raise GatewayError(f"Auth config response for '{toolkit}' has no id", detail=data)
        logger.info(f"Created auth config {auth_config_id} for toolkit '{toolkit}'")
        return auth_config_id

    async def get_or_create_auth_config(self, toolkit: str) -> str:
        """
        Reuse an existing auth config for ``toolkit`` or create one.

        The listing is filtered client-side as well, the platform may ignore
        the toolkit filter.
        """
        for item in await self.list_auth_configs(toolkit):
            item_toolkit = item.get("toolkit")
            slug = item_toolkit.get("slug") if isinstance(item_toolkit, dict) else item_toolkit
            if slug == toolkit and item.get("id"):
                logger.debug(f"Using existing auth config {item['id']} for toolkit '{toolkit}'")
                return item["id"]
        return await self.create_auth_config(toolkit)

    # -------------------------------------------------------------------------
    # MCP servers
    # -------------------------------------------------------------------------

    async def create_toolkit_server(self, name: str, auth_config_ids: list[str]) -> MCPServer:
        data = await self._request(
            "POST",
            "/v3/mcp/servers",
            json={"name": name, "auth_config_ids": auth_config_ids},
        )
        return self._parse_server(data)

    async def create_custom_server(
        self,
        name: str,
        tools: list[str],
        auth_config_ids: list[str],
    ) -> MCPServer:
        data = await self._request(
            "POST",
            "/v3/mcp/servers/custom",
            json={"name": name, "tools": tools, "auth_config_ids": auth_config_ids},
        )
        return self._parse_server(data)

    async def delete_server(self, server_id: str) -> None:
        await self._request("DELETE", f"/v3/mcp/servers/{server_id}")

    async def ping(self) -> bool:
        """True when the platform answers with our credentials."""
        try:
            await self._request("GET", "/v3/toolkits", params={"limit": 1})
        except GatewayError as e:
            logger.warning(f"Composio ping failed: {e}")
            return False
        return True

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _parse_server(data: dict[str, Any]) -> MCPServer:
        url = data.get("url") or data.get("mcp_url")
        if not data.get("id") or not url:
            raise GatewayError("Gateway response is missing id or url", detail=data)
        return MCPServer(id=data["id"], url=url, tools=data.get("tools") or [], name=data.get("name"))

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, params=params, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            body = e.response.text[:500]
            if status in (401, 403):
                raise PlatformAuthError(
                    f"Composio rejected credentials ({status}) for {method} {path}", detail=body
                ) from e
            raise GatewayError(f"Composio {method} {path} failed with {status}", detail=body) from e
        except httpx.RequestError as e:
            raise PlatformConnectionError(f"Composio unreachable for {method} {path}: {e}") from e

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise GatewayError(f"Composio {method} {path} returned invalid JSON") from e
        return data if isinstance(data, dict) else {"items": data}
