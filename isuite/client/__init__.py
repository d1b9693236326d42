from isuite.client.api_client import ApiError, AssistantClient, parse_sse_line
from isuite.client.chat_view import ChatView, LoginRequired
from isuite.client.connections import wait_for_connection
from isuite.client.progress import AssistantMessage, ToolProgress, extract_tool_progress

__all__ = [
    "ApiError",
    "AssistantClient",
    "parse_sse_line",
    "ChatView",
    "LoginRequired",
    "wait_for_connection",
    "AssistantMessage",
    "ToolProgress",
    "extract_tool_progress",
]
