import os
import sys
from decimal import Decimal
from pathlib import Path
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("ACCRUAL_WORKER_ENABLED", "false")
os.environ.setdefault("JWT_SIGNING_KEY", "test-signing-key")


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from pointmart_api.app import create_app  # noqa: E402
from pointmart_api.db.base import Base  # noqa: E402
from pointmart_api.db.session import get_session  # noqa: E402
from pointmart_api.models.account import Account  # noqa: E402
from pointmart_api.models.user import User  # noqa: E402


async def _build_factory(url: str):
    engine = create_async_engine(url, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session_factory():
    engine, factory = await _build_factory("sqlite+aiosqlite:///:memory:")
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Separate connections per session, for tests with concurrent tasks."""

    engine, factory = await _build_factory(f"sqlite+aiosqlite:///{tmp_path / 'pointmart.db'}")
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user():
    async def _make_user(factory, login: str, *, balance: Decimal = Decimal("0")) -> UUID:
        async with factory() as session:
            user = User(login=login, password_hash="not-a-real-hash")
            session.add(user)
            await session.flush()
            session.add(Account(user_id=user.id, balance=balance, withdrawn=Decimal("0")))
            await session.commit()
            return user.id

    return _make_user
