"""
Shared FastAPI dependencies: the session cookie gate and the service
singletons. Routes take these through Depends so tests can override them.
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from isuite.core.config import settings
from isuite.core.langgraph.graph import LangGraphAgent
from isuite.core.logging import logger
from isuite.schemas import User
from isuite.services.database_service import DatabaseService, database_service
from isuite.services.tool_gateway import ToolGatewayClient, tool_gateway
from isuite.utils.auth import CredentialStore

credential_store = CredentialStore.from_settings(settings)
agent: Optional[LangGraphAgent] = None


def get_credential_store() -> CredentialStore:
    return credential_store


def get_database() -> DatabaseService:
    return database_service


def get_tool_gateway() -> ToolGatewayClient:
    return tool_gateway


def get_agent() -> LangGraphAgent:
    """Process-wide agent; the model client behind it is built on first chat."""
    global agent
    if agent is None:
        agent = LangGraphAgent()
    return agent


def get_current_user(
    request: Request, store: CredentialStore = Depends(get_credential_store)
) -> Optional[User]:
    """The user of the session cookie, or None when absent, expired or forged."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    return store.verify(token)


def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    """Gate for authenticated routes.

    Raises:
        HTTPException: 401 when there is no valid session
    """
    if user is None:
        logger.debug("unauthenticated_request_rejected")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user
