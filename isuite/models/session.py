from datetime import datetime
from typing import TYPE_CHECKING, List
from sqlmodel import Field, Relationship
from isuite.models.base import BaseModel, utc_now

if TYPE_CHECKING:
    from isuite.models.message import ChatMessage

DEFAULT_SESSION_TITLE = "New Chat"


# Chat Session Model
class ChatSession(BaseModel, table=True):
    """
    A persisted, titled conversation owned by exactly one user.
    Sessions with zero messages are placeholders and get cleaned up.
    """
    __tablename__ = "chat_session"

    # String IDs (uuid)
    id: str = Field(primary_key=True)

    # There is no user table: the owner is the email carried in the session token
    user_id: str = Field(index=True)

    title: str = Field(default=DEFAULT_SESSION_TITLE)

    # Bumped on every append, drives the "most recent first" listing
    updated_at: datetime = Field(default_factory=utc_now, index=True)

    message_count: int = Field(default=0)

    # Deleting a session deletes its messages
    messages: List["ChatMessage"] = Relationship(
        back_populates="session",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "ChatMessage.id"},
    )
