"""Background reconciliation of pending orders against the accrual service."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Sequence

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from pointmart_api.db.transaction import SessionFactory, TransactionManager
from pointmart_api.models.order import Order
from pointmart_api.services.accounts.repository import AccountRepository
from pointmart_api.services.accrual.client import (
    AccrualClient,
    AccrualClientError,
    AccrualNoDataError,
    AccrualQueryResult,
    AccrualRateLimitedError,
)
from pointmart_api.services.accrual.limiter import DynamicRateLimiter, RateLimiterCancelledError
from pointmart_api.services.accrual.order_source import UnprocessedOrderSource
from pointmart_api.services.orders.repository import OrderFinalizedError, OrderRepository

OrderRepositoryFactory = Callable[[AsyncSession], OrderRepository]
AccountRepositoryFactory = Callable[[AsyncSession], AccountRepository]


class WorkerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


class AccrualOutcome(str, Enum):
    UPDATED = "updated"
    SKIPPED = "skipped"
    NO_DATA = "no_data"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class AccrualWorkerMetrics:
    """In-memory counters for readiness checks and sweep summaries."""

    orders_updated: int = 0
    orders_skipped: int = 0
    orders_without_data: int = 0
    orders_failed: int = 0
    rate_limited: int = 0
    cancelled: int = 0
    points_credited: Decimal = Decimal("0")
    last_success_at: datetime | None = None
    last_error: str | None = None
    last_error_at: datetime | None = None

    def record(self, outcome: AccrualOutcome) -> None:
        if outcome is AccrualOutcome.UPDATED:
            self.orders_updated += 1
            self.last_success_at = datetime.now(timezone.utc)
        elif outcome is AccrualOutcome.SKIPPED:
            self.orders_skipped += 1
        elif outcome is AccrualOutcome.NO_DATA:
            self.orders_without_data += 1
        elif outcome is AccrualOutcome.RATE_LIMITED:
            self.rate_limited += 1
        elif outcome is AccrualOutcome.FAILED:
            self.orders_failed += 1
        else:
            self.cancelled += 1

    def record_error(self, message: str) -> None:
        self.last_error = message
        self.last_error_at = datetime.now(timezone.utc)

    def snapshot(self) -> dict[str, Any]:
        return {
            "orders_updated": self.orders_updated,
            "orders_skipped": self.orders_skipped,
            "orders_without_data": self.orders_without_data,
            "orders_failed": self.orders_failed,
            "rate_limited": self.rate_limited,
            "cancelled": self.cancelled,
            "points_credited": str(self.points_credited),
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
        }


class AccrualReconciliationWorker:
    """Feeds pending orders through the rate limiter to the accrual service.

    Each successful answer updates the order and credits the owner's account
    in one transaction. Per-order failures are logged and counted; the order
    stays pending and is offered again by a later poll.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        client: AccrualClient,
        limiter: DynamicRateLimiter,
        transaction_manager: TransactionManager | None = None,
        source: UnprocessedOrderSource | None = None,
        batch_size: int = 50,
        poll_interval_seconds: float = 10.0,
        cooldown_seconds: float = 60.0,
        backoff_step_seconds: float = 1.0,
        shutdown_timeout_seconds: float = 30.0,
        order_repository_factory: OrderRepositoryFactory | None = None,
        account_repository_factory: AccountRepositoryFactory | None = None,
    ) -> None:
        if session_factory is None:
            raise ValueError("session_factory is required")
        if client is None:
            raise ValueError("client is required")
        if limiter is None:
            raise ValueError("limiter is required")

        self._session_factory = session_factory
        self._client = client
        self._limiter = limiter
        self._transactions = transaction_manager or TransactionManager(session_factory)
        self._order_repository_factory = order_repository_factory or OrderRepository
        self._account_repository_factory = account_repository_factory or AccountRepository
        self._batch_size = batch_size
        self.poll_interval_seconds = poll_interval_seconds
        self._cooldown_seconds = cooldown_seconds
        self._backoff_step_seconds = backoff_step_seconds
        self._shutdown_timeout_seconds = shutdown_timeout_seconds
        self._owns_source = source is None
        self._source = source or self._build_source()

        self._stop_event = asyncio.Event()
        self._finished = asyncio.Event()
        self._finished.set()
        self._task: asyncio.Task | None = None
        self._state = WorkerState.STOPPED
        self._metrics = AccrualWorkerMetrics()

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is WorkerState.RUNNING

    @property
    def metrics(self) -> AccrualWorkerMetrics:
        return self._metrics

    @property
    def source(self) -> UnprocessedOrderSource:
        return self._source

    async def run(self) -> None:
        """Run the loop in the calling task until :meth:`stop` is called."""

        if not self._begin():
            return
        await self._run_loop()

    def start(self) -> None:
        if not self._begin():
            return
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        if self._state is WorkerState.STOPPED:
            return
        if self._state is WorkerState.RUNNING:
            self._state = WorkerState.STOPPING
            self._stop_event.set()
            logger.info("Accrual reconciliation worker stopping")

        try:
            await asyncio.wait_for(self._finished.wait(), timeout=self._shutdown_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Accrual reconciliation worker did not stop in time",
                timeout_seconds=self._shutdown_timeout_seconds,
            )
            return
        self._task = None

    async def run_once(self) -> dict[str, int]:
        """Poll one page of pending orders and reconcile every order it yielded."""

        if self._state is WorkerState.STOPPED:
            self._stop_event.clear()
            if self._source.closed and self._owns_source:
                self._source = self._build_source()

        summary = {outcome.value: 0 for outcome in AccrualOutcome}
        summary["fetched"] = await self._source.poll_once()
        for order in self._source.drain():
            if self._stop_event.is_set():
                break
            outcome = await self.process_order(order)
            summary[outcome.value] += 1

        logger.info("Accrual sweep completed", **summary)
        return summary

    async def process_order(self, order: Order) -> AccrualOutcome:
        number = order.number
        try:
            await self._limiter.wait(self._stop_event)
        except RateLimiterCancelledError:
            outcome = AccrualOutcome.CANCELLED
        else:
            outcome = await self._reconcile(number)
        self._metrics.record(outcome)
        return outcome

    async def _reconcile(self, number: str) -> AccrualOutcome:
        try:
            result = await self._client.fetch(number)
        except AccrualNoDataError:
            logger.debug("No accrual data yet", order_number=number)
            return AccrualOutcome.NO_DATA
        except AccrualRateLimitedError as exc:
            await self._back_off(exc.retry_after)
            return AccrualOutcome.RATE_LIMITED
        except AccrualClientError as exc:
            logger.warning("Accrual lookup failed", order_number=number, error=str(exc))
            self._metrics.record_error(str(exc))
            return AccrualOutcome.FAILED

        return await self._apply(result)

    async def _apply(self, result: AccrualQueryResult) -> AccrualOutcome:
        try:
            async with self._transactions.transaction() as session:
                owner_id = await self._order_repository_factory(session).update_order(result)
                if result.accrual > 0:
                    await self._account_repository_factory(session).add_to_account(owner_id, result.accrual)
        except OrderFinalizedError as exc:
            logger.debug("Order already final", order_number=result.order_number, status=exc.status.value)
            return AccrualOutcome.SKIPPED
        except Exception as exc:
            logger.exception("Accrual update failed", order_number=result.order_number, error=str(exc))
            self._metrics.record_error(str(exc))
            return AccrualOutcome.FAILED

        self._metrics.points_credited += result.accrual
        logger.info(
            "Order accrual applied",
            order_number=result.order_number,
            status=result.status.value,
            accrual=str(result.accrual),
        )
        return AccrualOutcome.UPDATED

    async def _back_off(self, retry_after: float | None) -> None:
        cooldown = max(self._cooldown_seconds, retry_after or 0.0)
        logger.info(
            "Accrual service rate limited; pausing",
            cooldown_seconds=cooldown,
            interval_seconds=self._limiter.interval,
        )
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=cooldown)

        await self._limiter.settle()
        if self._stop_event.is_set():
            # The limiter may already be closed by whoever stopped us.
            return
        interval = self._limiter.interval + self._backoff_step_seconds
        self._limiter.update(interval, self._limiter.burst)
        await self._limiter.settle()
        logger.info("Accrual request rate lowered", interval_seconds=interval, burst=self._limiter.burst)

    def _begin(self) -> bool:
        if self._state is not WorkerState.STOPPED:
            logger.warning("Accrual reconciliation worker already running", state=self._state.value)
            return False
        self._stop_event.clear()
        self._finished.clear()
        if self._source.closed and self._owns_source:
            self._source = self._build_source()
        self._state = WorkerState.RUNNING
        logger.info(
            "Accrual reconciliation worker started",
            poll_interval_seconds=self.poll_interval_seconds,
            batch_size=self._batch_size,
            interval_seconds=self._limiter.interval,
            burst=self._limiter.burst,
        )
        return True

    async def _run_loop(self) -> None:
        producer = asyncio.create_task(self._source.run(self._stop_event))
        try:
            while not self._stop_event.is_set():
                order = await self._source.next_order(self._stop_event)
                if order is None:
                    break
                await self.process_order(order)
        finally:
            self._stop_event.set()
            if not producer.done():
                producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer
            self._state = WorkerState.STOPPED
            self._finished.set()
            logger.info("Accrual reconciliation worker stopped", **self._metrics.snapshot())

    def _build_source(self) -> UnprocessedOrderSource:
        return UnprocessedOrderSource(
            self._fetch_unprocessed,
            limit=self._batch_size,
            poll_interval_seconds=self.poll_interval_seconds,
        )

    async def _fetch_unprocessed(self, limit: int, offset: int) -> Sequence[Order]:
        session = await self._ensure_session()
        async with session as db:
            return await self._order_repository_factory(db).get_unprocessed_orders(limit, offset)

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session


__all__ = [
    "AccrualOutcome",
    "AccrualReconciliationWorker",
    "AccrualWorkerMetrics",
    "WorkerState",
]
