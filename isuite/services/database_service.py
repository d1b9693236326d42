import uuid
from typing import Any, Dict, List, Optional
from sqlalchemy import literal
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool, StaticPool
from sqlmodel import Session, SQLModel, create_engine, select, col

from isuite.core.config import Environment, settings
from isuite.core.logging import logger
from isuite.models.base import utc_now
from isuite.models.database import DEFAULT_SESSION_TITLE, ChatMessage, ChatSession
from isuite.utils.sanitizer import derive_title


class SessionNotFoundError(LookupError):
    """Raised when a chat session does not exist (or belongs to someone else)."""


# Database Service
class DatabaseService:
    """
    Chat Session Store.
    Persists conversations and their ordered messages per user.
    Uses SQLModel for ORM Operations and maintains a connection pool.
    """
    def __init__(self, database_url: Optional[str] = None):
        """
        Initialize the engine with robust pooling settings.

        Args:
            database_url: Overrides settings.DATABASE_URL (tests use "sqlite://")
        """
        self.database_url = database_url or settings.DATABASE_URL
        try:
            if self.database_url.startswith("sqlite"):
                # one shared connection, so in-memory databases survive across sessions
                self.engine = create_engine(
                    self.database_url,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
            else:
                # pool_size: no. of connections to keep open permanently
                # max_overflow: no. of temporary connections to allow during spikes
                self.engine = create_engine(
                    self.database_url,
                    pool_pre_ping=True,  # check if connection is alive before using it
                    poolclass=QueuePool,
                    pool_size=settings.POSTGRES_POOL_SIZE,
                    max_overflow=settings.POSTGRES_MAX_OVERFLOW,
                    pool_timeout=30,     # Fail if no connection available after 30s
                    pool_recycle=1800,   # Recycle connections every 30 mins to prevent stale sockets
                )
            # Create tables if they don't exist (code-first migration)
            SQLModel.metadata.create_all(self.engine)

            logger.info(
                "database_initialized",
                environment=settings.ENVIRONMENT.value,
                dialect=self.engine.dialect.name,
            )

        except SQLAlchemyError as e:
            logger.error("database_initialization_error", error=str(e), environment=settings.ENVIRONMENT.value)
            # In Dev, we might want to crash. In prod, maybe we want to retry.
            if settings.ENVIRONMENT != Environment.PRODUCTION:
                raise

    # Session Management
    async def list_sessions(self, user_id: str) -> List[ChatSession]:
        """List all chat sessions of a user, most recently updated first.

        Args:
            user_id: The ID of the user

        Returns:
            List[ChatSession]: List of user's sessions
        """
        with Session(self.engine) as session:
            statement = (
                select(ChatSession)
                .where(ChatSession.user_id == user_id)
                .order_by(col(ChatSession.updated_at).desc(), col(ChatSession.created_at).desc())
            )
            return list(session.exec(statement).all())

    async def create_session(self, user_id: str) -> ChatSession:
        """Create a new chat session, reusing an empty one if the user has it.

        A session without messages is a placeholder; handing the same one
        back keeps the list free of empty stubs.

        Args:
            user_id: The ID of the user who owns the session

        Returns:
            ChatSession: The created (or reused) session
        """
        with Session(self.engine) as session:
            statement = (
                select(ChatSession)
                .where(ChatSession.user_id == user_id, ChatSession.message_count == 0)
                .order_by(col(ChatSession.updated_at).desc())
            )
            chat_session = session.exec(statement).first()
            if chat_session is not None:
                chat_session.updated_at = utc_now()
                logger.info("empty_session_reused", session_id=chat_session.id, user_id=user_id)
            else:
                chat_session = ChatSession(id=str(uuid.uuid4()), user_id=user_id, title=DEFAULT_SESSION_TITLE)
                logger.info("session_created", session_id=chat_session.id, user_id=user_id)
            session.add(chat_session)
            session.commit()
            session.refresh(chat_session)
            return chat_session

    async def get_session(self, session_id: str, user_id: Optional[str] = None) -> Optional[ChatSession]:
        """Get a session by ID.

        Args:
            session_id: The ID of the session to retrieve
            user_id: When given, sessions owned by anybody else are treated as missing

        Returns:
            Optional[ChatSession]: The session if found, None otherwise
        """
        with Session(self.engine) as session:
            chat_session = session.get(ChatSession, session_id)
            if chat_session is None:
                return None
            if user_id is not None and chat_session.user_id != user_id:
                return None
            return chat_session

    async def get_messages(self, session_id: str) -> List[ChatMessage]:
        """All messages of a session in conversation order."""
        with Session(self.engine) as session:
            statement = select(ChatMessage).where(ChatMessage.session_id == session_id).order_by(col(ChatMessage.id))
            return list(session.exec(statement).all())

    async def append_message(
        self,
        session_id: str,
        role: str,
        content: str,
        tool_calls: Optional[List[Dict[str, Any]]] = None,
        user_id: Optional[str] = None,
    ) -> ChatMessage:
        """Append a message to a session.

        Bumps the session's updated_at and message_count. The first user
        message also names the session.

        Args:
            session_id: The session to append to
            role: "user" or "assistant"
            content: Message text
            tool_calls: Optional ordered tool invocation records
            user_id: When given, the session must belong to this user

        Returns:
            ChatMessage: The stored message

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        with Session(self.engine) as session:
            chat_session = session.get(ChatSession, session_id)
            if chat_session is None or (user_id is not None and chat_session.user_id != user_id):
                raise SessionNotFoundError(session_id)

            if role == "user" and not self._has_user_message(session, session_id):
                title = derive_title(content, settings.SESSION_TITLE_MAX_LENGTH)
                if title:
                    chat_session.title = title

            message = ChatMessage(session_id=session_id, role=role, content=content, tool_calls=tool_calls)
            chat_session.message_count += 1
            # last write wins, concurrent tabs are not reconciled
            chat_session.updated_at = utc_now()

            session.add(message)
            session.add(chat_session)
            session.commit()
            session.refresh(message)
            logger.info(
                "message_appended",
                session_id=session_id,
                message_id=message.id,
                role=role,
                tool_call_count=len(tool_calls or []),
            )
            return message

    @staticmethod
    def _has_user_message(session: Session, session_id: str) -> bool:
        statement = select(ChatMessage.id).where(ChatMessage.session_id == session_id, ChatMessage.role == "user")
        return session.exec(statement).first() is not None

    async def delete_session(self, session_id: str, user_id: Optional[str] = None) -> bool:
        """Delete a session and all of its messages.

        Args:
            session_id: The ID of the session to delete
            user_id: When given, only the owner may delete

        Returns:
            bool: True if deletion was successful, False if session not found
        """
        with Session(self.engine) as session:
            chat_session = session.get(ChatSession, session_id)
            if not chat_session or (user_id is not None and chat_session.user_id != user_id):
                return False

            # messages go with it through the relationship cascade
            session.delete(chat_session)
            session.commit()
            logger.info("session_deleted", session_id=session_id)
            return True

    async def update_session_title(self, session_id: str, title: str) -> ChatSession:
        """Update a session's title.

        Args:
            session_id: The ID of the session to update
            title: The new title for the session

        Returns:
            ChatSession: The updated session

        Raises:
            SessionNotFoundError: If session is not found
        """
        with Session(self.engine) as session:
            chat_session = session.get(ChatSession, session_id)
            if not chat_session:
                raise SessionNotFoundError(session_id)

            chat_session.title = title
            session.add(chat_session)
            session.commit()
            session.refresh(chat_session)
            logger.info("session_title_updated", session_id=session_id, title=title)
            return chat_session

    async def health_check(self) -> bool:
        """Check database connection health.

        Returns:
            bool: True if database is healthy, False otherwise
        """
        try:
            with Session(self.engine) as session:
                # Execute a simple query to check connection
                session.exec(select(literal(1))).first()
                return True
        except SQLAlchemyError as e:
            logger.error("database_health_check_failed", error=str(e))
            return False

# Create a global singleton instance
database_service = DatabaseService()
