"""Point balances and the append-only operation ledger."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from pointmart_api.db.base import Base


# Smallest amount a Numeric(14, 2) money column stores without rounding.
POINTS_QUANTUM = Decimal("0.01")


class AccountOperationType(str, Enum):
    WITHDRAWAL = "WITHDRAWAL"


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),)

    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    balance = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    withdrawn = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", back_populates="account")


class AccountOperation(Base):
    """Ledger entry; withdrawals carry a negative amount."""

    __tablename__ = "account_operations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    operation = Column(SqlEnum(AccountOperationType, name="account_operation_type"), nullable=False)
    order_number = Column(String, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    processed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
