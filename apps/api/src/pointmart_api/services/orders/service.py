"""Order submission and listing for authenticated users."""

from __future__ import annotations

from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from pointmart_api.domain.luhn import is_valid_order_number
from pointmart_api.models.order import Order

from .repository import OrderAlreadyExistsError, OrderError, OrderRepository


class InvalidOrderNumberError(OrderError):
    """Raised when an order number fails format or checksum validation."""


class OrderService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._orders = OrderRepository(session)

    async def submit(self, user_id: UUID, number: str) -> tuple[Order | None, bool]:
        """Register ``number`` for the user.

        Returns ``(order, True)`` when the order was created and ``(None, False)``
        when the same user already uploaded it. Conflicts propagate.
        """

        number = number.strip()
        if not is_valid_order_number(number):
            raise InvalidOrderNumberError(f"Order number {number!r} is invalid")

        try:
            order = await self._orders.create_order(user_id, number)
            await self._session.commit()
        except OrderAlreadyExistsError:
            await self._session.rollback()
            return None, False
        except Exception:
            await self._session.rollback()
            raise

        logger.info("Order uploaded", order_number=number, user_id=str(user_id))
        return order, True

    async def list_for_user(self, user_id: UUID) -> list[Order]:
        return await self._orders.get_orders_by_user_id(user_id)
