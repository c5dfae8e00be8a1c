"""Withdrawals and balance reads."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from pointmart_api.domain.luhn import is_valid_order_number
from pointmart_api.models.account import POINTS_QUANTUM, Account, AccountOperation
from pointmart_api.services.orders.repository import OrderRepository
from pointmart_api.services.orders.service import InvalidOrderNumberError

from .repository import AccountRepository


class AccountService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._accounts = AccountRepository(session)
        self._orders = OrderRepository(session)

    async def get_balance(self, user_id: UUID) -> Account:
        return await self._accounts.get_account(user_id)

    async def withdraw(self, user_id: UUID, order_number: str, amount: Decimal) -> AccountOperation:
        """Spend points against a new order number.

        The order row, the debit and the ledger entry commit together; any
        failure rolls all three back.
        """

        if amount <= 0:
            raise ValueError("Withdrawal sum must be positive")
        if amount % POINTS_QUANTUM:
            raise ValueError("Withdrawal sum must not have more than two decimal places")
        order_number = order_number.strip()
        if not is_valid_order_number(order_number):
            raise InvalidOrderNumberError(f"Order number {order_number!r} is invalid")

        try:
            await self._orders.create_order(user_id, order_number)
            await self._accounts.withdraw(user_id, amount)
            entry = await self._accounts.save_operation(
                user_id=user_id,
                order_number=order_number,
                amount=-amount,
            )
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        logger.info(
            "Points withdrawn",
            user_id=str(user_id),
            order_number=order_number,
            amount=str(amount),
        )
        return entry

    async def list_withdrawals(self, user_id: UUID) -> list[AccountOperation]:
        return await self._accounts.get_withdrawals(user_id)
