"""Unit-of-work helper wrapping a session factory in commit/rollback semantics."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]
T = TypeVar("T")


class TransactionManager:
    """Runs a block of store calls so they commit or roll back together."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        session = await self._ensure_session()
        async with session as managed_session:
            try:
                yield managed_session
                await managed_session.commit()
            except BaseException:
                await managed_session.rollback()
                raise

    async def run(self, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.transaction() as session:
            return await fn(session)

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session
