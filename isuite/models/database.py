"""
Database Models Export.
This allows us to make simple imports like:
'from isuite.models.database import ChatSession, ChatMessage'
"""
from isuite.models.message import ChatMessage
from isuite.models.session import DEFAULT_SESSION_TITLE, ChatSession

# Explicitly define what is exported
__all__ = ["ChatSession", "ChatMessage", "DEFAULT_SESSION_TITLE"]
