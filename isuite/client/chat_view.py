"""
State behind the chat screen: the active session, its transcript, and the
save-once bookkeeping for streamed assistant replies. Rendering is left to
whoever consumes the events `send()` yields.
"""
from contextlib import aclosing
from typing import AsyncIterator, List, Optional

from isuite.client.api_client import ApiError, AssistantClient
from isuite.client.progress import AssistantMessage, extract_tool_progress
from isuite.core.logging import logger
from isuite.schemas import (
    ErrorEvent,
    FinishEvent,
    Message,
    MessageCreate,
    StartEvent,
    StreamEvent,
    ToolCallRecord,
    User,
)
from isuite.schemas.chat import ChatMessageResponse, ChatSessionResponse


class LoginRequired(Exception):
    """No valid session cookie; the user has to log in first."""


class ChatView:
    def __init__(self, client: AssistantClient):
        self.client = client
        self.user: Optional[User] = None
        self.session: Optional[ChatSessionResponse] = None
        self.history: List[ChatMessageResponse] = []
        self.messages: List[Message] = []
        self.current: Optional[AssistantMessage] = None
        self.last_saved_message_id: Optional[str] = None
        self.is_streaming = False
        self.error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.messages

    async def load(self) -> ChatSessionResponse:
        """Check the session cookie, then open the latest chat (or a new one).

        Raises:
            LoginRequired: when there is no logged in user
        """
        user = await self.client.me()
        if user is None:
            raise LoginRequired()
        self.user = user

        sessions = await self.client.list_sessions()
        if sessions:
            await self._open(sessions[0].id)
        else:
            self._reset(await self.client.create_session())
        logger.debug("chat_view_loaded", user_id=user.id, session_id=self.session.id)
        return self.session

    async def _open(self, session_id: str) -> None:
        detail = await self.client.get_session(session_id)
        self._reset(detail.session)
        self.history = list(detail.messages)
        self.messages = [Message(role=m.role, content=m.content) for m in detail.messages]

    def _reset(self, session: ChatSessionResponse) -> None:
        self.session = session
        self.history = []
        self.messages = []
        self.current = None
        self.error = None

    async def _leave_current(self) -> None:
        # an untouched session is not worth keeping in the list
        if self.session is not None and self.is_empty:
            logger.info("empty_session_discarded", session_id=self.session.id)
            await self.client.delete_session(self.session.id)
            self.session = None

    async def switch_session(self, session_id: str) -> ChatSessionResponse:
        if self.session is not None and self.session.id == session_id:
            return self.session
        await self._leave_current()
        await self._open(session_id)
        return self.session

    async def new_chat(self) -> ChatSessionResponse:
        if self.session is not None and self.is_empty:
            return self.session
        await self._leave_current()
        self._reset(await self.client.create_session())
        return self.session

    async def delete_session(self, session_id: str) -> None:
        """Delete a session; deleting the open one moves to the next most recent."""
        await self.client.delete_session(session_id)
        if self.session is None or self.session.id != session_id:
            return
        self.session = None
        sessions = await self.client.list_sessions()
        if sessions:
            await self._open(sessions[0].id)
        else:
            self._reset(await self.client.create_session())

    async def send(self, text: str) -> AsyncIterator[StreamEvent]:
        """
        Save the prompt, stream the reply and save the reply when it finishes.

        Yields every stream event for rendering. A reply that errors out or is
        abandoned is not saved.
        """
        if self.session is None:
            raise RuntimeError("No open session, call load() first")
        if self.is_streaming:
            raise RuntimeError("A reply is already streaming")

        prompt = Message(role="user", content=text)
        saved = await self.client.append_message(self.session.id, MessageCreate(role="user", content=prompt.content))
        self.history.append(saved)
        self.messages.append(prompt)
        self.error = None

        self.is_streaming = True
        try:
            # closing the events closes the HTTP stream, which cancels the run
            async with aclosing(self.client.stream_chat(self.messages)) as events:
                async for event in events:
                    if isinstance(event, StartEvent):
                        self.current = AssistantMessage(id=event.message_id)
                    elif isinstance(event, ErrorEvent):
                        self.error = event.error_text
                    elif self.current is not None:
                        self.current.apply(event)

                    if isinstance(event, FinishEvent) and self.current is not None and self.error is None:
                        await self._save_assistant(self.current)
                    yield event
        except ApiError as e:
            self.error = e.message
            raise
        finally:
            self.is_streaming = False

    async def _save_assistant(self, message: AssistantMessage) -> None:
        if message.id == self.last_saved_message_id:
            return

        tool_calls = [
            ToolCallRecord(tool_name=p.tool_name, status=p.status, args=p.args)
            for p in extract_tool_progress(message)
        ]
        self.messages.append(Message(role="assistant", content=message.content))
        # marked before the request so a re-render never submits it twice
        self.last_saved_message_id = message.id
        try:
            saved = await self.client.append_message(
                self.session.id,
                MessageCreate(role="assistant", content=message.content, tool_calls=tool_calls or None),
            )
        except ApiError as e:
            # the reply stays on screen even if it could not be stored
            logger.warning("assistant_message_save_failed", session_id=self.session.id, error=e.message)
            return
        self.history.append(saved)
