"""
Session Service: cookie login, current user and logout.

There is no password or identity provider: whatever the login form submits
becomes the identity, signed into the `session` cookie.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from isuite.api.deps import get_credential_store, get_current_user
from isuite.core.config import settings
from isuite.core.limiter import endpoint_limit, limiter
from isuite.core.logging import logger
from isuite.schemas import LoginRequest, LoginResponse, MeResponse, SuccessResponse, User
from isuite.utils.auth import CredentialStore

router = APIRouter()


def set_session_cookie(response: Response, token: str, max_age: int) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=max_age,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )


@router.post("/login", response_model=LoginResponse)
@limiter.limit(endpoint_limit("login"))
async def login(
    request: Request,
    response: Response,
    payload: LoginRequest,
    store: CredentialStore = Depends(get_credential_store),
):
    """Sign the submitted identity into the session cookie.

    Args:
        request: The FastAPI request object for rate limiting
        response: Used to set the cookie
        payload: Email and display name

    Returns:
        LoginResponse: The identity now carried by the cookie

    Raises:
        HTTPException: 400 if a field is missing or blank, 500 on anything else
    """
    email = (payload.email or "").strip()
    name = (payload.name or "").strip()
    if not email or not name:
        logger.info("login_rejected_missing_fields", has_email=bool(email), has_name=bool(name))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email and name are required")

    try:
        user = User(id=email, email=email, name=name)
        token = store.issue(user)
        set_session_cookie(response, token, store.max_age_seconds)
    except Exception as e:
        logger.exception("login_failed", error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to login")

    logger.info("user_logged_in", user_id=user.id)
    return LoginResponse(user=user)


@router.get("/me", response_model=MeResponse)
async def me(user: Optional[User] = Depends(get_current_user)):
    return MeResponse(user=user)


@router.post("/logout", response_model=SuccessResponse)
async def logout(response: Response, user: Optional[User] = Depends(get_current_user)):
    """Drop the session cookie. Fine to call without a session."""
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )
    logger.info("user_logged_out", user_id=user.id if user else None)
    return SuccessResponse()
