"""Seed development users (with their point accounts) into the API database."""

from __future__ import annotations

import asyncio
import os
from decimal import Decimal
from typing import TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pointmart_api.core.settings import settings
from pointmart_api.models.account import Account
from pointmart_api.models.user import User
from pointmart_api.services.auth import hash_password


class SeedUser(TypedDict):
    login: str
    password: str
    balance: Decimal


DEV_USERS: list[SeedUser] = [
    {
        "login": os.getenv("DEV_SHORTCUT_CUSTOMER_LOGIN", "customer"),
        "password": os.getenv("DEV_SHORTCUT_CUSTOMER_PASSWORD", "customer-pass"),
        "balance": Decimal("0"),
    },
    {
        "login": os.getenv("DEV_SHORTCUT_TESTING_LOGIN", "testing"),
        "password": os.getenv("DEV_SHORTCUT_TESTING_PASSWORD", "testing-pass"),
        "balance": Decimal("750"),
    },
]


async def seed_users(session: AsyncSession) -> None:
    for user in DEV_USERS:
        password_hash = hash_password(user["password"], rounds=settings.password_hash_rounds)
        with session.no_autoflush:
            existing = await session.execute(select(User).where(User.login == user["login"]))
        record = existing.scalar_one_or_none()

        if record:
            record.password_hash = password_hash
            account = await session.get(Account, record.id)
            if account is None:
                session.add(Account(user_id=record.id, balance=user["balance"], withdrawn=Decimal("0")))
            else:
                account.balance = user["balance"]
        else:
            record = User(login=user["login"], password_hash=password_hash)
            session.add(record)
            await session.flush()
            session.add(Account(user_id=record.id, balance=user["balance"], withdrawn=Decimal("0")))
    await session.commit()


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            await seed_users(session)
        print("Development users ready ✅")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
