"""Balance, withdrawal and withdrawal history endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from pointmart_api.api.dependencies.session import require_user
from pointmart_api.db.session import get_session
from pointmart_api.models.user import User
from pointmart_api.services.accounts import AccountService, InsufficientFundsError
from pointmart_api.services.orders import InvalidOrderNumberError, OrderError

router = APIRouter(tags=["Balance"])


class BalanceResponse(BaseModel):
    current: float
    withdrawn: float


class WithdrawRequest(BaseModel):
    order: str = Field(..., min_length=1)
    sum: Decimal = Field(..., max_digits=14, decimal_places=2)


class WithdrawalResponse(BaseModel):
    order: str
    sum: float
    processed_at: datetime


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> BalanceResponse:
    account = await AccountService(db).get_balance(user.id)
    return BalanceResponse(current=float(account.balance), withdrawn=float(account.withdrawn))


@router.post("/balance/withdraw")
async def withdraw(
    payload: WithdrawRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> Response:
    if payload.sum <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Sum must be positive")

    try:
        await AccountService(db).withdraw(user.id, payload.order, payload.sum)
    except InvalidOrderNumberError as error:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error)) from error
    except InsufficientFundsError as error:
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(error)) from error
    except OrderError as error:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error)) from error
    except ValueError as error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)) from error

    return Response(status_code=status.HTTP_200_OK)


@router.get(
    "/withdrawals",
    response_model=List[WithdrawalResponse],
    responses={204: {"description": "No withdrawals yet"}},
)
async def list_withdrawals(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    entries = await AccountService(db).list_withdrawals(user.id)
    if not entries:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return [
        WithdrawalResponse(order=entry.order_number, sum=float(-entry.amount), processed_at=entry.processed_at)
        for entry in entries
    ]
