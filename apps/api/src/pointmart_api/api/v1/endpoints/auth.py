"""Registration and login endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from pointmart_api.api.dependencies.session import SESSION_COOKIE_NAME
from pointmart_api.core.settings import settings
from pointmart_api.db.session import get_session
from pointmart_api.services.auth import (
    AuthService,
    InvalidCredentialsError,
    LoginTakenError,
    PasswordTooLongError,
)

router = APIRouter(tags=["Auth"])


class CredentialsRequest(BaseModel):
    login: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("login")
    @classmethod
    def strip_login(cls, value: str) -> str:
        login = value.strip()
        if not login:
            raise ValueError("login must not be blank")
        return login


class SessionResponse(BaseModel):
    status: str = "ok"


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=settings.jwt_expiration_hours * 3600,
        httponly=True,
        samesite="lax",
    )


@router.post("/register", response_model=SessionResponse)
async def register(
    payload: CredentialsRequest,
    response: Response,
    db: AsyncSession = Depends(get_session),
) -> SessionResponse:
    try:
        _, token = await AuthService(db).register(payload.login, payload.password)
    except PasswordTooLongError as error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)) from error
    except LoginTakenError as error:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error)) from error

    _set_session_cookie(response, token)
    return SessionResponse()


@router.post("/login", response_model=SessionResponse)
async def login(
    payload: CredentialsRequest,
    response: Response,
    db: AsyncSession = Depends(get_session),
) -> SessionResponse:
    try:
        _, token = await AuthService(db).authenticate(payload.login, payload.password)
    except InvalidCredentialsError as error:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(error)) from error

    _set_session_cookie(response, token)
    return SessionResponse()
