"""Session-aware dependencies for the user APIs."""

from __future__ import annotations

from fastapi import Cookie, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pointmart_api.core.settings import settings
from pointmart_api.db.session import get_session
from pointmart_api.models.user import User
from pointmart_api.services.auth import InvalidTokenError, decode_access_token

SESSION_COOKIE_NAME = "Authorization"


async def require_user(
    token: str | None = Cookie(None, alias=SESSION_COOKIE_NAME),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Resolve the authenticated user from the session cookie."""

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session token",
        )

    try:
        user_id = decode_access_token(token, signing_key=settings.jwt_signing_key)
    except InvalidTokenError as error:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token",
        ) from error

    user = await db.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session user not found",
        )

    return user
