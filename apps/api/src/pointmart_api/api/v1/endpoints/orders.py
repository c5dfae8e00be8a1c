"""Order upload and listing."""

from __future__ import annotations

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from pointmart_api.api.dependencies.session import require_user
from pointmart_api.db.session import get_session
from pointmart_api.models.order import OrderStatusEnum
from pointmart_api.models.user import User
from pointmart_api.services.orders import InvalidOrderNumberError, OrderConflictError, OrderService

router = APIRouter(tags=["Orders"])


class OrderResponse(BaseModel):
    number: str
    status: OrderStatusEnum
    accrual: float | None = None
    uploaded_at: datetime


def _is_plain_text(request: Request) -> bool:
    content_type = request.headers.get("content-type", "")
    return content_type.split(";", 1)[0].strip().lower() == "text/plain"


@router.post(
    "/orders",
    status_code=status.HTTP_202_ACCEPTED,
    responses={200: {"description": "Order already uploaded by this user"}},
)
async def upload_order(
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> Response:
    if not _is_plain_text(request):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Expected text/plain body")

    body = await request.body()
    try:
        number = body.decode("utf-8").strip()
    except UnicodeDecodeError as error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body is not UTF-8") from error
    if not number:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Order number is required")

    try:
        _, created = await OrderService(db).submit(user.id, number)
    except InvalidOrderNumberError as error:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error)) from error
    except OrderConflictError as error:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error)) from error

    return Response(status_code=status.HTTP_202_ACCEPTED if created else status.HTTP_200_OK)


@router.get(
    "/orders",
    response_model=List[OrderResponse],
    response_model_exclude_none=True,
    responses={204: {"description": "No orders uploaded"}},
)
async def list_orders(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    orders = await OrderService(db).list_for_user(user.id)
    if not orders:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return [
        OrderResponse(
            number=order.number,
            status=order.status,
            accrual=float(order.accrual) if order.accrual else None,
            uploaded_at=order.uploaded_at,
        )
        for order in orders
    ]
