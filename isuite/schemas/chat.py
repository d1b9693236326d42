from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import Field, model_validator
from typing_extensions import Self

from isuite.schemas.base import CamelModel

ToolStatus = Literal["in-progress", "completed"]


# chat schemas
class Message(CamelModel):
    """
    Represents a single message in the conversation history.
    """
    role: Literal["user", "assistant"] = Field(..., description="Who sent the message")
    content: str = Field(default="", description="The message content", max_length=32000)

    @model_validator(mode="after")
    def validate_user_content(self) -> Self:
        # assistant turns may be tool-call only, user turns may not be empty
        if self.role == "user" and not self.content.strip():
            raise ValueError("User messages must not be empty")
        return self


class ChatRequest(CamelModel):
    """
    Payload sent to the /chat endpoint
    """
    messages: List[Message] = Field(..., min_length=1)


# Stream events
# The /chat response is a sequence of these, one per SSE "data:" line.
class StartEvent(CamelModel):
    type: Literal["start"] = "start"
    message_id: str


class TextDeltaEvent(CamelModel):
    type: Literal["text-delta"] = "text-delta"
    delta: str


class ToolInputEvent(CamelModel):
    """The model asked for a tool; the call is pending."""
    type: Literal["tool-input-available"] = "tool-input-available"
    tool_call_id: str
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolOutputEvent(CamelModel):
    """The tool returned; output is what the model will see."""
    type: Literal["tool-output-available"] = "tool-output-available"
    tool_call_id: str
    tool_name: str
    output: Any = None


class FinishStepEvent(CamelModel):
    type: Literal["finish-step"] = "finish-step"
    step: int


class FinishEvent(CamelModel):
    type: Literal["finish"] = "finish"
    message_id: str
    steps: int


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    error_text: str


StreamEvent = Annotated[
    Union[StartEvent, TextDeltaEvent, ToolInputEvent, ToolOutputEvent, FinishStepEvent, FinishEvent, ErrorEvent],
    Field(discriminator="type"),
]


# Chat session schemas
class ToolCallRecord(CamelModel):
    """One tool invocation attached to a persisted assistant message."""
    tool_name: str
    status: ToolStatus = "completed"
    args: Dict[str, Any] = Field(default_factory=dict)


class MessageCreate(CamelModel):
    """
    Payload for POST /chat/sessions/{id}/messages
    """
    role: Literal["user", "assistant"]
    content: str = Field(default="", max_length=32000)
    tool_calls: Optional[List[ToolCallRecord]] = None


class ChatMessageResponse(CamelModel):
    id: int
    session_id: str
    role: Literal["user", "assistant"]
    content: str
    tool_calls: Optional[List[ToolCallRecord]] = None
    created_at: datetime


class ChatSessionResponse(CamelModel):
    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    message_count: int


class SessionListResponse(CamelModel):
    sessions: List[ChatSessionResponse]


class SessionResponse(CamelModel):
    session: ChatSessionResponse


class SessionDetailResponse(CamelModel):
    session: ChatSessionResponse
    messages: List[ChatMessageResponse]


class MessageResponse(CamelModel):
    message: ChatMessageResponse
