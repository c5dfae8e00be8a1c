"""HTTP client for the external accrual service."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

import httpx
from loguru import logger

from pointmart_api.models.account import POINTS_QUANTUM
from pointmart_api.models.order import OrderStatusEnum

_ACCRUAL_STATUS_MAP = {
    "REGISTERED": OrderStatusEnum.PROCESSING,
    "PROCESSING": OrderStatusEnum.PROCESSING,
    "INVALID": OrderStatusEnum.INVALID,
    "PROCESSED": OrderStatusEnum.PROCESSED,
}

# Numeric(14, 2) holds at most 12 integer digits.
_MAX_ACCRUAL = Decimal("1e12")


@dataclass(frozen=True)
class AccrualQueryResult:
    order_number: str
    status: OrderStatusEnum
    accrual: Decimal


class AccrualClientError(RuntimeError):
    """Base error for accrual lookups."""


class AccrualRateLimitedError(AccrualClientError):
    """The accrual service answered 429."""

    def __init__(self, retry_after: float | None = None) -> None:
        detail = "accrual service rate limited the request"
        if retry_after is not None:
            detail = f"{detail} (retry after {retry_after:g}s)"
        super().__init__(detail)
        self.retry_after = retry_after


class AccrualNoDataError(AccrualClientError):
    """The accrual service has nothing for the order yet (204)."""


class AccrualTransientError(AccrualClientError):
    """Network failures, unexpected statuses and malformed payloads."""


class AccrualClient:
    """Looks up order accruals; owns its ``httpx.AsyncClient`` unless one is injected."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = http_client is None

    async def fetch(self, order_number: str) -> AccrualQueryResult:
        url = f"{self._base_url}/api/orders/{order_number}"
        try:
            response = await self._client.get(url, timeout=self._timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise AccrualTransientError(f"accrual request failed: {exc}") from exc

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            raise AccrualRateLimitedError(_parse_retry_after(response.headers.get("Retry-After")))
        if response.status_code == httpx.codes.NO_CONTENT:
            raise AccrualNoDataError(f"no accrual data for order {order_number}")
        if response.status_code != httpx.codes.OK:
            raise AccrualTransientError(f"unexpected accrual response status {response.status_code}")

        try:
            payload = response.json(parse_float=Decimal)
        except ValueError as exc:
            raise AccrualTransientError("accrual response is not valid JSON") from exc

        result = _parse_payload(order_number, payload)
        logger.debug(
            "Accrual fetched",
            order_number=order_number,
            status=result.status.value,
            accrual=str(result.accrual),
        )
        return result

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _parse_retry_after(raw: str | None) -> float | None:
    if not raw:
        return None
    try:
        value = float(raw.strip())
    except ValueError:
        return None
    return value if value >= 0 else None


def _parse_payload(order_number: str, payload: Any) -> AccrualQueryResult:
    if not isinstance(payload, dict):
        raise AccrualTransientError("accrual response must be a JSON object")

    reported_number = payload.get("order")
    if reported_number is not None and str(reported_number) != order_number:
        raise AccrualTransientError(
            f"accrual response is for order {reported_number}, expected {order_number}"
        )

    raw_status = payload.get("status")
    status = _ACCRUAL_STATUS_MAP.get(str(raw_status).upper()) if raw_status is not None else None
    if status is None:
        raise AccrualTransientError(f"unknown accrual status {raw_status!r}")

    raw_accrual = payload.get("accrual")
    if raw_accrual is None:
        accrual = Decimal("0")
    elif isinstance(raw_accrual, bool):
        raise AccrualTransientError("accrual must be a number")
    else:
        try:
            accrual = Decimal(str(raw_accrual))
        except InvalidOperation as exc:
            raise AccrualTransientError(f"accrual {raw_accrual!r} is not a number") from exc
        if not accrual.is_finite() or accrual < 0 or accrual >= _MAX_ACCRUAL:
            raise AccrualTransientError(f"accrual {raw_accrual!r} is out of range")
        # Match what the money columns store so the credit equals the recorded accrual.
        accrual = accrual.quantize(POINTS_QUANTUM, rounding=ROUND_HALF_UP)

    # Points are only credited for processed orders.
    if status is not OrderStatusEnum.PROCESSED:
        accrual = Decimal("0")

    return AccrualQueryResult(order_number=order_number, status=status, accrual=accrual)


__all__ = [
    "AccrualClient",
    "AccrualClientError",
    "AccrualNoDataError",
    "AccrualQueryResult",
    "AccrualRateLimitedError",
    "AccrualTransientError",
]
