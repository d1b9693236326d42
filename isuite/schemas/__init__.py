from isuite.schemas.auth import LoginRequest, LoginResponse, MeResponse, SuccessResponse, User
from isuite.schemas.chat import (
    ChatMessageResponse,
    ChatRequest,
    ChatSessionResponse,
    ErrorEvent,
    FinishEvent,
    FinishStepEvent,
    Message,
    MessageCreate,
    StartEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolCallRecord,
    ToolInputEvent,
    ToolOutputEvent,
)
from isuite.schemas.connections import Connection
from isuite.schemas.graph import GraphState

__all__ = [
    "User",
    "LoginRequest",
    "LoginResponse",
    "MeResponse",
    "SuccessResponse",
    "Message",
    "ChatRequest",
    "StreamEvent",
    "StartEvent",
    "TextDeltaEvent",
    "ToolInputEvent",
    "ToolOutputEvent",
    "FinishStepEvent",
    "FinishEvent",
    "ErrorEvent",
    "ToolCallRecord",
    "MessageCreate",
    "ChatMessageResponse",
    "ChatSessionResponse",
    "Connection",
    "GraphState",
]
