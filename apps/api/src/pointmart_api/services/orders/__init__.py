from .repository import (
    OrderAlreadyExistsError,
    OrderConflictError,
    OrderError,
    OrderFinalizedError,
    OrderNotFoundError,
    OrderRepository,
    OrdersNotFoundError,
)
from .service import InvalidOrderNumberError, OrderService

__all__ = [
    "InvalidOrderNumberError",
    "OrderAlreadyExistsError",
    "OrderConflictError",
    "OrderError",
    "OrderFinalizedError",
    "OrderNotFoundError",
    "OrderRepository",
    "OrderService",
    "OrdersNotFoundError",
]
