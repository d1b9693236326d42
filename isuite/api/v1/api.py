"""Route table. Paths are mounted at the application root."""
from fastapi import APIRouter

from isuite.api.v1.admin import router as admin_router
from isuite.api.v1.auth import router as auth_router
from isuite.api.v1.chat import router as chat_router
from isuite.api.v1.connections import router as connections_router
from isuite.api.v1.sessions import router as sessions_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(connections_router, prefix="/connections", tags=["connections"])
api_router.include_router(admin_router, prefix="/admin", tags=["admin"])
api_router.include_router(sessions_router, prefix="/chat/sessions", tags=["sessions"])
api_router.include_router(chat_router, prefix="/chat", tags=["chat"])
