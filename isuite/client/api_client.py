"""
Async HTTP client for the assistant API, as used by the chat front end.

Cookies are kept by the underlying httpx client, so `login()` is all it
takes to authenticate the following calls.
"""
from typing import Any, AsyncIterator, List, Optional, Sequence

import httpx
from pydantic import TypeAdapter

from isuite.core.logging import logger
from isuite.schemas import ChatRequest, Message, MessageCreate, StreamEvent, User
from isuite.schemas.auth import LoginResponse, MeResponse
from isuite.schemas.chat import (
    ChatMessageResponse,
    ChatSessionResponse,
    MessageResponse,
    SessionDetailResponse,
    SessionListResponse,
    SessionResponse,
)
from isuite.schemas.connections import Connection, ConnectionsResponse, ConnectResponse, Toolkit, ToolkitsResponse

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


class ApiError(Exception):
    """Non-success answer from the API; `message` is the `error` field of the body."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


def parse_sse_line(line: str) -> Optional[StreamEvent]:
    """
    Decode one SSE line. Returns None for anything that is not an event
    (blank keep-alive lines, comments, the closing [DONE] marker).
    """
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if not data or data == "[DONE]":
        return None
    return stream_event_adapter.validate_json(data)


class AssistantClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 90.0,
    ):
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def __aenter__(self) -> "AssistantClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _error(response: httpx.Response) -> ApiError:
        try:
            body = response.json()
            message = body.get("error") if isinstance(body, dict) else None
        except ValueError:
            message = None
        return ApiError(response.status_code, message or response.reason_phrase or "Request failed")

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, path, **kwargs)
        if response.status_code >= 400:
            error = self._error(response)
            logger.debug("api_request_failed", method=method, path=path, status_code=error.status_code)
            raise error
        return response.json()

    # Auth
    async def login(self, email: str, name: str) -> User:
        data = await self._request("POST", "/auth/login", json={"email": email, "name": name})
        return LoginResponse.model_validate(data).user

    async def me(self) -> Optional[User]:
        data = await self._request("GET", "/auth/me")
        return MeResponse.model_validate(data).user

    async def logout(self) -> None:
        await self._request("POST", "/auth/logout")

    # Sessions
    async def list_sessions(self) -> List[ChatSessionResponse]:
        data = await self._request("GET", "/chat/sessions")
        return SessionListResponse.model_validate(data).sessions

    async def create_session(self) -> ChatSessionResponse:
        data = await self._request("POST", "/chat/sessions")
        return SessionResponse.model_validate(data).session

    async def get_session(self, session_id: str) -> SessionDetailResponse:
        data = await self._request("GET", f"/chat/sessions/{session_id}")
        return SessionDetailResponse.model_validate(data)

    async def rename_session(self, session_id: str, title: str) -> ChatSessionResponse:
        data = await self._request("PATCH", f"/chat/sessions/{session_id}", json={"title": title})
        return SessionResponse.model_validate(data).session

    async def delete_session(self, session_id: str) -> None:
        await self._request("DELETE", f"/chat/sessions/{session_id}")

    async def append_message(self, session_id: str, message: MessageCreate) -> ChatMessageResponse:
        data = await self._request(
            "POST",
            f"/chat/sessions/{session_id}/messages",
            json=message.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        return MessageResponse.model_validate(data).message

    # Connections
    async def list_connections(self) -> List[Connection]:
        data = await self._request("GET", "/connections")
        return ConnectionsResponse.model_validate(data).connections

    async def list_toolkits(self) -> List[Toolkit]:
        data = await self._request("GET", "/connections/toolkits")
        return ToolkitsResponse.model_validate(data).toolkits

    async def connect(self, toolkit: str) -> str:
        """Start connecting a toolkit; returns the URL the user must open."""
        data = await self._request("POST", "/connections/connect", json={"toolkit": toolkit})
        return ConnectResponse.model_validate(data).redirect_url

    async def disconnect(self, connection_id: str) -> None:
        await self._request("POST", "/connections/disconnect", json={"connectionId": connection_id})

    # Chat
    async def stream_chat(self, messages: Sequence[Message]) -> AsyncIterator[StreamEvent]:
        """
        POST the history to /chat and yield the stream events as they arrive.
        Leaving the loop early closes the connection, which cancels the run.
        """
        payload = ChatRequest(messages=list(messages)).model_dump(by_alias=True)
        async with self._client.stream("POST", "/chat", json=payload) as response:
            if response.status_code >= 400:
                await response.aread()
                raise self._error(response)
            async for line in response.aiter_lines():
                event = parse_sse_line(line)
                if event is not None:
                    yield event
