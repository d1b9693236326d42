from typing import Optional
from pydantic import Field

from isuite.schemas.base import CamelModel


# Authentication schemas
class User(CamelModel):
    """
    Identity carried inside the session token.
    `id` is the email address, there is no separate user store.
    """
    id: str = Field(..., description="User identifier (the email address)")
    email: str = Field(..., description="User's email address")
    name: str = Field(..., description="Display name")


class LoginRequest(CamelModel):
    """
    Login form payload. Both fields are optional here so the route can
    answer a missing field with its own 400 message.
    """
    email: Optional[str] = Field(default=None, description="User's email address")
    name: Optional[str] = Field(default=None, description="User's display name")


class LoginResponse(CamelModel):
    success: bool = True
    user: User


class MeResponse(CamelModel):
    """Current session user, or null when there is no valid session."""
    user: Optional[User] = None


class SuccessResponse(CamelModel):
    success: bool = True
