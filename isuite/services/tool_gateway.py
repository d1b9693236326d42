"""
Client for the external tool platform (Composio v3 REST API).

Connections (per-user OAuth links to toolkits) are owned by the platform;
this module only lists, creates and revokes them, and turns the tools of a
user's active toolkits into LangChain tools the model can call.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from langchain_core.tools import BaseTool, StructuredTool
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from isuite.core.config import settings
from isuite.core.logging import logger
from isuite.schemas.connections import UNKNOWN, Connection

# Toolkits the UI offers. Anything else can still be connected by slug.
AVAILABLE_TOOLKITS: List[Dict[str, str]] = [
    {"id": "github", "name": "GitHub", "description": "Manage repositories and issues"},
    {"id": "gmail", "name": "Gmail", "description": "Send and manage emails"},
    {"id": "slack", "name": "Slack", "description": "Send messages and manage channels"},
    {"id": "notion", "name": "Notion", "description": "Manage pages and databases"},
    {"id": "googlecalendar", "name": "Google Calendar", "description": "Manage events and schedules"},
    {"id": "googledocs", "name": "Google Docs", "description": "Create and edit documents"},
    {"id": "whatsapp", "name": "WhatsApp", "description": "Send messages and manage chats"},
]

# OpenAI rejects requests with more tools than this
MAX_TOOLS_PER_REQUEST = 128


class ToolGatewayError(Exception):
    """A non-success answer (or no answer) from the tool platform."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _upstream_message(response: httpx.Response, default: str) -> str:
    """Pull the human readable error out of an upstream error body."""
    try:
        body = response.json()
    except ValueError:
        return default
    if not isinstance(body, dict):
        return default
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("message") or default
    return body.get("message") or (error if isinstance(error, str) and error else default)


def group_connections_by_user(connections: List[Connection]) -> Dict[str, List[Connection]]:
    """
    Group connections by the user id the platform reports.

    Records without a user id all land in the "unknown" bucket.
    """
    grouped: Dict[str, List[Connection]] = {}
    for connection in connections:
        grouped.setdefault(connection.user_id or UNKNOWN, []).append(connection)
    return grouped


class ToolSession:
    """
    Tool access for one user. The manifest is fetched on every call to
    `tools()` so a freshly connected toolkit shows up on the next message.
    """

    def __init__(self, gateway: "ToolGatewayClient", user_id: str):
        self.gateway = gateway
        self.user_id = user_id

    async def tools(self) -> List[BaseTool]:
        """LangChain tools for every ACTIVE toolkit the user has connected."""
        connections = await self.gateway.list_connections(self.user_id)
        toolkits = sorted({c.toolkit_slug for c in connections if c.is_active and c.toolkit_slug != UNKNOWN})
        if not toolkits:
            logger.info("no_active_toolkits", user_id=self.user_id)
            return []

        definitions = await self.gateway.list_tools(toolkits)
        tools = [self._build_tool(definition) for definition in definitions[:MAX_TOOLS_PER_REQUEST]]
        logger.info("tool_manifest_loaded", user_id=self.user_id, toolkits=toolkits, tool_count=len(tools))
        return tools

    def _build_tool(self, definition: Dict[str, Any]) -> BaseTool:
        slug = definition["slug"]
        gateway = self.gateway
        user_id = self.user_id

        async def _run(**kwargs: Any) -> Any:
            return await gateway.execute_tool(slug, user_id, kwargs)

        return StructuredTool(
            name=slug,
            description=(definition.get("description") or definition.get("name") or slug)[:1024],
            args_schema=definition.get("input_parameters") or {"type": "object", "properties": {}},
            coroutine=_run,
        )


class ToolGatewayClient:
    """
    Thin async HTTP client for the tool platform.
    One httpx.AsyncClient per process, created lazily.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.COMPOSIO_API_KEY
        self.base_url = (base_url or settings.COMPOSIO_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.TOOL_GATEWAY_TIMEOUT
        self.max_retries = max_retries or settings.TOOL_GATEWAY_RETRIES
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        if not self.api_key:
            logger.warning("composio_api_key_not_configured")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                headers={"x-api-key": self.api_key, "Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        failure: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send one request, retrying transport errors.
        Any non-2xx answer becomes a ToolGatewayError.
        """
        client = self._get_client()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
                retry=retry_if_exception_type(httpx.TransportError),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    response = await client.request(method, path, params=params, json=json)
        except httpx.TransportError as e:
            logger.error("tool_gateway_unreachable", method=method, path=path, error=str(e))
            raise ToolGatewayError(failure) from e

        if response.status_code >= 400:
            message = _upstream_message(response, failure)
            logger.error(
                "tool_gateway_request_failed",
                method=method,
                path=path,
                status_code=response.status_code,
                error=message,
            )
            raise ToolGatewayError(message, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ToolGatewayError(failure, status_code=response.status_code) from e

    async def _paginate(self, path: str, failure: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            page_params = dict(params)
            if cursor:
                page_params["cursor"] = cursor
            data = await self._request("GET", path, failure, params=page_params)
            items.extend(data.get("items") or [])
            cursor = data.get("next_cursor") or data.get("nextCursor")
            if not cursor:
                return items

    # Connections
    async def list_connections(self, user_id: Optional[str] = None) -> List[Connection]:
        """All connected accounts, or only those of `user_id`."""
        params: Dict[str, Any] = {"limit": 100}
        if user_id:
            params["user_ids"] = [user_id]
        items = await self._paginate("/connected_accounts", "Failed to fetch connections", params)
        connections = [Connection.from_upstream(item) for item in items]
        logger.debug("connections_fetched", user_id=user_id, count=len(connections))
        return connections

    async def _auth_config_id(self, toolkit_slug: str) -> str:
        """Find the auth config for a toolkit, creating a managed one if none exists."""
        data = await self._request(
            "GET", "/auth_configs", "Failed to fetch auth configs", params={"toolkit_slug": toolkit_slug}
        )
        for item in data.get("items") or []:
            if item.get("id"):
                return item["id"]

        created = await self._request(
            "POST",
            "/auth_configs",
            "Failed to create auth config",
            json={"toolkit": {"slug": toolkit_slug}, "auth_config": {"type": "use_composio_managed_auth"}},
        )
        auth_config = created.get("auth_config") or created
        if not auth_config.get("id"):
            raise ToolGatewayError("Failed to create auth config")
        logger.info("auth_config_created", toolkit=toolkit_slug, auth_config_id=auth_config["id"])
        return auth_config["id"]

    async def initiate_connection(self, user_id: str, toolkit_slug: str) -> str:
        """
        Start the OAuth handshake for a toolkit.

        Returns the redirect URL; the caller opens it and polls
        `list_connections` until the connection turns ACTIVE.
        """
        auth_config_id = await self._auth_config_id(toolkit_slug)
        data = await self._request(
            "POST",
            "/connected_accounts",
            "Failed to initiate connection",
            json={"auth_config": {"id": auth_config_id}, "connection": {"user_id": user_id}},
        )
        redirect_url = (
            data.get("redirect_url")
            or data.get("redirect_uri")
            or data.get("redirectUrl")
            or ((data.get("connectionData") or {}).get("val") or {}).get("redirectUrl")
        )
        if not redirect_url:
            raise ToolGatewayError("No redirect URL returned for connection")
        logger.info("connection_initiated", user_id=user_id, toolkit=toolkit_slug, connection_id=data.get("id"))
        return redirect_url

    async def remove_connection(self, connection_id: str) -> None:
        await self._request("DELETE", f"/connected_accounts/{connection_id}", "Failed to disconnect")
        logger.info("connection_removed", connection_id=connection_id)

    # Tools
    async def list_tools(self, toolkits: List[str]) -> List[Dict[str, Any]]:
        """Tool definitions (slug, description, JSON schema) for the given toolkits."""
        definitions: List[Dict[str, Any]] = []
        for toolkit in toolkits:
            data = await self._request(
                "GET",
                "/tools",
                "Failed to fetch tools",
                params={"toolkit_slug": toolkit, "limit": settings.TOOLS_PER_TOOLKIT},
            )
            definitions.extend(item for item in data.get("items") or [] if item.get("slug"))
        return definitions

    async def execute_tool(self, tool_slug: str, user_id: str, arguments: Dict[str, Any]) -> Any:
        """
        Run a tool on the platform on behalf of `user_id`.

        A tool-level failure (platform answered, tool did not succeed) is
        returned as an error dict so the model can read it; transport and
        HTTP failures raise ToolGatewayError.
        """
        data = await self._request(
            "POST",
            f"/tools/execute/{tool_slug}",
            f"Failed to execute {tool_slug}",
            json={"user_id": user_id, "arguments": arguments},
        )
        successful = data.get("successful", data.get("successfull", True))
        logger.info("tool_executed", tool=tool_slug, user_id=user_id, successful=bool(successful))
        if not successful:
            return {"error": data.get("error") or f"{tool_slug} failed"}
        return data.get("data")

    # Sessions
    async def open_session(self, user_id: str) -> ToolSession:
        """Tool session of a user. Sessions hold no state, so one is built per call."""
        return ToolSession(self, user_id)


tool_gateway = ToolGatewayClient()
