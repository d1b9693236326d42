from typing import TYPE_CHECKING, Any, Dict, List, Optional
from sqlalchemy import JSON, Column, Text
from sqlmodel import Field, Relationship
from isuite.models.base import BaseModel

if TYPE_CHECKING:
    from isuite.models.session import ChatSession


# Chat Message Model
class ChatMessage(BaseModel, table=True):
    """
    A single message inside a chat session.
    The autoincrement id doubles as the conversation order.
    """
    __tablename__ = "chat_message"

    id: Optional[int] = Field(default=None, primary_key=True)

    session_id: str = Field(foreign_key="chat_session.id", index=True)

    # "user" or "assistant"
    role: str

    content: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))

    # [{"tool_name": ..., "status": ..., "args": {...}}] in the order the calls happened
    tool_calls: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON))

    session: "ChatSession" = Relationship(back_populates="messages")
