"""Order persistence used by the HTTP surface and the accrual worker."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pointmart_api.models.order import (
    PENDING_ORDER_STATUSES,
    TERMINAL_ORDER_STATUSES,
    Order,
    OrderStatusEnum,
)

if TYPE_CHECKING:
    from pointmart_api.services.accrual.client import AccrualQueryResult


class OrderError(RuntimeError):
    """Base exception for order persistence failures."""


class OrderAlreadyExistsError(OrderError):
    """The order number was already uploaded by the same user."""


class OrderConflictError(OrderError):
    """The order number belongs to another user."""


class OrdersNotFoundError(OrderError):
    """No pending orders matched the requested page."""


class OrderNotFoundError(OrderError):
    """No order carries the requested number."""


class OrderFinalizedError(OrderError):
    """The order already reached a terminal status and cannot change again."""

    def __init__(self, number: str, status: OrderStatusEnum) -> None:
        super().__init__(f"Order {number} is already {status.value}")
        self.number = number
        self.status = status


class OrderRepository:
    """Reads and writes orders inside the caller's session; never commits."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_order(self, user_id: UUID, number: str) -> Order:
        existing = await self._session.scalar(select(Order).where(Order.number == number))
        if existing is not None:
            if existing.user_id == user_id:
                raise OrderAlreadyExistsError(f"Order {number} already uploaded")
            raise OrderConflictError(f"Order {number} belongs to another user")

        order = Order(
            number=number,
            user_id=user_id,
            status=OrderStatusEnum.NEW,
            accrual=Decimal("0"),
        )
        self._session.add(order)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent upload of the same number.
            raise OrderConflictError(f"Order {number} was uploaded concurrently") from exc
        return order

    async def get_orders_by_user_id(self, user_id: UUID) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.uploaded_at.desc(), Order.id.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_unprocessed_orders(self, limit: int, offset: int) -> Sequence[Order]:
        stmt = (
            select(Order)
            .where(Order.status.in_(PENDING_ORDER_STATUSES))
            .order_by(Order.id.asc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        orders = list(result.scalars().all())
        if not orders:
            raise OrdersNotFoundError(f"No pending orders at offset {offset}")
        return orders

    async def update_order(self, result: "AccrualQueryResult") -> UUID:
        """Apply an accrual answer and return the owning user id."""

        stmt = select(Order).where(Order.number == result.order_number).with_for_update()
        order = await self._session.scalar(stmt)
        if order is None:
            raise OrderNotFoundError(f"Order {result.order_number} not found")
        if order.status in TERMINAL_ORDER_STATUSES:
            raise OrderFinalizedError(order.number, order.status)

        order.status = result.status
        order.accrual = result.accrual
        await self._session.flush()
        return order.user_id


__all__ = [
    "OrderAlreadyExistsError",
    "OrderConflictError",
    "OrderError",
    "OrderFinalizedError",
    "OrderNotFoundError",
    "OrderRepository",
    "OrdersNotFoundError",
]
