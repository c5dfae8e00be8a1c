"""SQLAlchemy models package."""

from .account import POINTS_QUANTUM, Account, AccountOperation, AccountOperationType  # noqa: F401
from .order import Order, OrderStatusEnum  # noqa: F401
from .user import User  # noqa: F401

__all__ = [
    "POINTS_QUANTUM",
    "Account",
    "AccountOperation",
    "AccountOperationType",
    "Order",
    "OrderStatusEnum",
    "User",
]
