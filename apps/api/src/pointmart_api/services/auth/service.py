"""User registration, password checks and session tokens."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

import bcrypt
from jose import JWTError, jwt
from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pointmart_api.core.settings import Settings, settings as default_settings
from pointmart_api.models.user import User
from pointmart_api.services.accounts.repository import AccountRepository

JWT_ALGORITHM = "HS256"
MAX_PASSWORD_BYTES = 72


class AuthError(RuntimeError):
    """Base exception for authentication failures."""


class LoginTakenError(AuthError):
    """Raised when registering a login that already exists."""


class InvalidCredentialsError(AuthError):
    """Raised when a login/password pair does not match."""


class InvalidTokenError(AuthError):
    """Raised when a session token is missing, expired or tampered with."""


class PasswordTooLongError(AuthError, ValueError):
    """bcrypt only hashes the first 72 bytes of a password."""


def hash_password(password: str, *, rounds: int = 12) -> str:
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise PasswordTooLongError(f"Password exceeds {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user_id: UUID, *, signing_key: str, expires_in: timedelta) -> str:
    now = datetime.now(timezone.utc)
    claims = {"sub": str(user_id), "iat": now, "exp": now + expires_in}
    return jwt.encode(claims, signing_key, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, *, signing_key: str) -> UUID:
    try:
        claims = jwt.decode(token, signing_key, algorithms=[JWT_ALGORITHM])
        return UUID(str(claims["sub"]))
    except (JWTError, KeyError, ValueError) as exc:
        raise InvalidTokenError("Invalid session token") from exc


class AuthService:
    """Creates users with their accounts and issues signed session tokens."""

    def __init__(self, session: AsyncSession, *, config: Settings | None = None) -> None:
        self._session = session
        self._settings = config or default_settings

    async def register(self, login: str, password: str) -> tuple[User, str]:
        password_hash = hash_password(password, rounds=self._settings.password_hash_rounds)

        existing = await self._session.scalar(select(User.id).where(User.login == login))
        if existing is not None:
            raise LoginTakenError(f"Login {login!r} is taken")

        user = User(login=login, password_hash=password_hash)
        self._session.add(user)
        try:
            await self._session.flush()
            await AccountRepository(self._session).create_account(user.id)
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            raise LoginTakenError(f"Login {login!r} is taken") from exc
        except Exception:
            await self._session.rollback()
            raise

        logger.info("User registered", user_id=str(user.id))
        return user, self.issue_token(user.id)

    async def authenticate(self, login: str, password: str) -> tuple[User, str]:
        user = await self._session.scalar(select(User).where(User.login == login))
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Login rejected", login=login)
            raise InvalidCredentialsError("Invalid login or password")
        return user, self.issue_token(user.id)

    def issue_token(self, user_id: UUID) -> str:
        return create_access_token(
            user_id,
            signing_key=self._settings.jwt_signing_key,
            expires_in=timedelta(hours=self._settings.jwt_expiration_hours),
        )
