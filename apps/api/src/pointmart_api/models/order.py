from enum import Enum

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID

from pointmart_api.db.base import Base


class OrderStatusEnum(str, Enum):
    NEW = "NEW"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    INVALID = "INVALID"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_ORDER_STATUSES


TERMINAL_ORDER_STATUSES = frozenset({OrderStatusEnum.PROCESSED, OrderStatusEnum.INVALID})
PENDING_ORDER_STATUSES = (OrderStatusEnum.NEW, OrderStatusEnum.PROCESSING)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    number = Column(String, nullable=False, unique=True, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(
        SqlEnum(OrderStatusEnum, name="order_status_enum"),
        nullable=False,
        default=OrderStatusEnum.NEW,
        server_default=OrderStatusEnum.NEW.value,
    )
    accrual = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
