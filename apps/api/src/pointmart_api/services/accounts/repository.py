"""Balance bookkeeping and the withdrawal ledger."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pointmart_api.models.account import Account, AccountOperation, AccountOperationType


class AccountError(RuntimeError):
    """Base exception for account persistence failures."""


class AccountNotFoundError(AccountError):
    """The user has no account row."""


class InsufficientFundsError(AccountError):
    """A withdrawal would take the balance below zero."""


class AccountRepository:
    """Account writes run inside the caller's session; nothing here commits."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_account(self, user_id: UUID) -> Account:
        account = Account(user_id=user_id, balance=Decimal("0"), withdrawn=Decimal("0"))
        self._session.add(account)
        await self._session.flush()
        return account

    async def get_account(self, user_id: UUID) -> Account:
        stmt = select(Account).where(Account.user_id == user_id).execution_options(populate_existing=True)
        account = await self._session.scalar(stmt)
        if account is None:
            raise AccountNotFoundError(f"Account for user {user_id} not found")
        return account

    async def add_to_account(self, user_id: UUID, amount: Decimal) -> None:
        if amount <= 0:
            raise ValueError("amount must be positive")
        stmt = (
            update(Account)
            .where(Account.user_id == user_id)
            .values(balance=Account.balance + amount)
            .returning(Account.balance)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.first() is None:
            raise AccountNotFoundError(f"Account for user {user_id} not found")

    async def withdraw(self, user_id: UUID, amount: Decimal) -> None:
        """Debit ``amount`` in one conditional UPDATE so the balance never goes negative."""

        if amount <= 0:
            raise ValueError("amount must be positive")
        stmt = (
            update(Account)
            .where(Account.user_id == user_id, Account.balance >= amount)
            .values(
                balance=Account.balance - amount,
                withdrawn=Account.withdrawn + amount,
            )
            .returning(Account.balance)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.first() is None:
            await self.get_account(user_id)
            raise InsufficientFundsError(f"Balance of user {user_id} is below {amount}")

    async def save_operation(
        self,
        *,
        user_id: UUID,
        order_number: str,
        amount: Decimal,
        operation: AccountOperationType = AccountOperationType.WITHDRAWAL,
    ) -> AccountOperation:
        entry = AccountOperation(
            user_id=user_id,
            operation=operation,
            order_number=order_number,
            amount=amount,
        )
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def get_withdrawals(self, user_id: UUID) -> list[AccountOperation]:
        stmt = (
            select(AccountOperation)
            .where(
                AccountOperation.user_id == user_id,
                AccountOperation.operation == AccountOperationType.WITHDRAWAL,
            )
            .order_by(AccountOperation.processed_at.desc(), AccountOperation.id.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


__all__ = [
    "AccountError",
    "AccountNotFoundError",
    "AccountRepository",
    "InsufficientFundsError",
]
