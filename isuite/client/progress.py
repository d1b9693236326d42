from typing import Any, Dict, List

from pydantic import BaseModel, Field

from isuite.schemas import FinishStepEvent, StreamEvent, TextDeltaEvent, ToolInputEvent, ToolOutputEvent
from isuite.schemas.chat import ToolStatus


class ToolProgress(BaseModel):
    tool_call_id: str
    tool_name: str
    status: ToolStatus
    args: Dict[str, Any] = Field(default_factory=dict)


class AssistantMessage(BaseModel):
    """
    An assistant reply as it builds up from the stream: concatenated text
    plus the tool events, in the order they were received.
    """
    id: str
    content: str = ""
    events: List[StreamEvent] = Field(default_factory=list)
    steps: int = 0

    def apply(self, event: StreamEvent) -> None:
        if isinstance(event, TextDeltaEvent):
            self.content += event.delta
        elif isinstance(event, (ToolInputEvent, ToolOutputEvent)):
            self.events.append(event)
        elif isinstance(event, FinishStepEvent):
            self.steps = event.step


def extract_tool_progress(message: AssistantMessage) -> List[ToolProgress]:
    """
    One entry per tool call, in the order the calls were first seen.
    A call is "completed" once its output arrived, "in-progress" before.
    """
    progress: Dict[str, ToolProgress] = {}
    for event in message.events:
        if isinstance(event, ToolInputEvent):
            progress.setdefault(
                event.tool_call_id,
                ToolProgress(
                    tool_call_id=event.tool_call_id,
                    tool_name=event.tool_name,
                    status="in-progress",
                    args=event.input,
                ),
            )
        elif isinstance(event, ToolOutputEvent):
            entry = progress.setdefault(
                event.tool_call_id,
                ToolProgress(tool_call_id=event.tool_call_id, tool_name=event.tool_name, status="in-progress"),
            )
            entry.status = "completed"
    return list(progress.values())
